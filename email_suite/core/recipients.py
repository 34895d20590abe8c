"""
Free-text recipient parsing for the compose address fields.
"""

import re
from typing import Optional

from email_suite.schemas.message import Recipient


# `"Display Name" <a@b.com>`, `Name <a@b.com>`, `<a@b.com>` or `a@b.com`
_ADDRESS_PATTERN = re.compile(r'^(?:"?([^"]*)"?\s)?<?([^>]+@[^>]+)>?$')

# Keys that commit the typed text as a recipient
COMMIT_KEYS: frozenset[str] = frozenset({"Enter", ",", "Tab"})
BACKSPACE = "Backspace"


def parse(text: str) -> Optional[Recipient]:
    """
    Parse one address token.

    Returns None for anything without an ``@``; an incomplete token is not
    an error, it simply stays uncommitted in the input.
    """
    trimmed = text.strip()
    if not trimmed:
        return None

    match = _ADDRESS_PATTERN.match(trimmed)
    if match:
        name = (match.group(1) or "").strip() or None
        return Recipient(email=match.group(2).strip(), name=name)

    if "@" in trimmed:
        return Recipient(email=trimmed)

    return None


def contains(recipients: list[Recipient], email: str) -> bool:
    """Exact, case-sensitive address membership."""
    return any(r.email == email for r in recipients)


def add_unique(recipients: list[Recipient], recipient: Recipient) -> bool:
    """Append ``recipient`` unless its address is already present."""
    if contains(recipients, recipient.email):
        return False
    recipients.append(recipient)
    return True


def merge_unique(*groups: list[Recipient]) -> list[Recipient]:
    """Concatenate recipient lists keeping the first occurrence of each address."""
    merged: list[Recipient] = []
    for group in groups:
        for recipient in group:
            add_unique(merged, recipient)
    return merged
