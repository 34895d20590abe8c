"""
HTML sanitization gate for remote message bodies.

Only sanitized output is ever handed to the rendering layer. Locally
authored compose HTML comes from a trusted editor and does not pass
through here.
"""

import html
from dataclasses import dataclass
from typing import Literal

import nh3

from email_suite.schemas.message import EmailMessage


ALLOWED_TAGS: frozenset[str] = frozenset({
    "p", "br", "div", "span", "a", "img", "b", "strong", "i", "em", "u",
    "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li", "table", "tr",
    "td", "th", "thead", "tbody", "blockquote", "pre", "code", "hr",
})

ALLOWED_ATTRIBUTES: frozenset[str] = frozenset({
    "href", "src", "alt", "class", "style", "target", "width", "height",
})

ALLOWED_URL_SCHEMES: frozenset[str] = frozenset({
    "http", "https", "mailto", "tel", "cid",
})


def sanitize(raw_html: str) -> str:
    """
    Reduce untrusted HTML to the allowlisted tags and attributes.

    Script and style elements are dropped together with their content;
    event handlers and data-* attributes never survive.
    """
    if not raw_html:
        return ""
    return nh3.clean(
        raw_html,
        tags=set(ALLOWED_TAGS),
        attributes={"*": set(ALLOWED_ATTRIBUTES)},
        url_schemes=set(ALLOWED_URL_SCHEMES),
        link_rel=None,
    )


@dataclass(frozen=True)
class RenderedBody:
    """What the viewer renders: sanitized HTML, or plain text to be shown as text."""

    kind: Literal["html", "text"]
    content: str

    @property
    def is_html(self) -> bool:
        return self.kind == "html"


def render_body(message: EmailMessage) -> RenderedBody:
    if message.body_html:
        return RenderedBody(kind="html", content=sanitize(message.body_html))
    return RenderedBody(kind="text", content=message.body_text or message.body_preview or "")


def quote_for_forward(message: EmailMessage) -> str:
    """Original body as HTML suitable for embedding in a forwarded draft."""
    if message.body_html:
        return sanitize(message.body_html)
    text = message.body_text or message.body_preview or ""
    return html.escape(text).replace("\n", "<br/>")
