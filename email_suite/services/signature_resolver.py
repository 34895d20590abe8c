"""
Signature template rendering.
"""

import html
from typing import Mapping, Optional

from email_suite.schemas.signature import (
    DEFAULT_LOGO_WIDTH,
    PLACEHOLDER_FIELDS,
    EmailSignature,
)


# (field, label, colour) in rendering order
SOCIAL_LINK_STYLES: tuple[tuple[str, str, str], ...] = (
    ("linkedin", "LinkedIn", "#0077b5"),
    ("twitter", "Twitter", "#1da1f2"),
    ("facebook", "Facebook", "#4267B2"),
    ("instagram", "Instagram", "#E1306C"),
    ("youtube", "YouTube", "#FF0000"),
    ("website", "Website", "#333333"),
)

SIGNATURE_SEPARATOR = "<br/><br/>--<br/>"


def _attr(value: str) -> str:
    return html.escape(value, quote=True)


class SignatureResolver:
    """
    Renders a signature template against the sender's profile fields.

    Only placeholders whose field is supplied are replaced; anything else
    stays in the output verbatim.
    """

    def __init__(self, profile: Optional[Mapping[str, Optional[str]]] = None):
        self.profile = dict(profile or {})

    def render(
        self,
        signature: EmailSignature,
        fields: Optional[Mapping[str, Optional[str]]] = None,
    ) -> str:
        values = {**self.profile, **(fields or {})}
        body = signature.html_content or ""
        for name in PLACEHOLDER_FIELDS:
            value = values.get(name)
            if value is None:
                continue
            body = body.replace("{{" + name + "}}", value)

        if signature.logo_url:
            body = self.render_logo(signature) + body

        if signature.include_social_links:
            links = self.render_social_links(signature)
            if links:
                body += links

        return body

    def render_logo(self, signature: EmailSignature) -> str:
        width = signature.logo_width or DEFAULT_LOGO_WIDTH
        return (
            f'<img src="{_attr(signature.logo_url)}" alt="Logo" '
            f'style="width: {width}px; height: auto; margin-bottom: 12px;" /><br/>'
        )

    def render_social_links(self, signature: EmailSignature) -> str:
        links = signature.social_links
        anchors = []
        for field, label, colour in SOCIAL_LINK_STYLES:
            url = getattr(links, field)
            if not url:
                continue
            anchors.append(
                f'<a href="{_attr(url)}" '
                f'style="color: {colour}; margin-right: 8px; text-decoration: none;">{label}</a>'
            )
        if not anchors:
            return ""
        return f'<p style="margin-top: 12px;">{"".join(anchors)}</p>'

    def append_to(
        self,
        body_html: str,
        signature: Optional[EmailSignature],
        fields: Optional[Mapping[str, Optional[str]]] = None,
    ) -> str:
        """Body with the rendered signature appended under a ``--`` separator."""
        if signature is None:
            return body_html
        return f"{body_html}{SIGNATURE_SEPARATOR}{self.render(signature, fields)}"
