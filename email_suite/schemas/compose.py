"""
Compose draft schemas.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from email_suite.schemas.attachment import EmailAttachment
from email_suite.schemas.message import Importance, Recipient


ReplyType = Literal["reply", "reply_all", "forward"]

RecipientField = Literal["to", "cc", "bcc"]

RECIPIENT_FIELDS: tuple[str, ...] = ("to", "cc", "bcc")


class ComposeDraft(BaseModel):
    """
    In-memory draft owned by the compose controller.

    Never persisted by the suite; discarded on close or successful send.
    """

    to: list[Recipient] = Field(default_factory=list)
    cc: list[Recipient] = Field(default_factory=list)
    bcc: list[Recipient] = Field(default_factory=list)
    subject: str = ""
    body_html: str = ""
    attachments: list[EmailAttachment] = Field(default_factory=list)
    signature_id: Optional[str] = None
    importance: Importance = "normal"
    reply_to: Optional[str] = None
    reply_type: Optional[ReplyType] = None

    def recipients(self, field: RecipientField) -> list[Recipient]:
        return getattr(self, field)


class OutgoingMessage(BaseModel):
    """Payload handed to the provider gateway for sending."""

    to: list[Recipient]
    cc: list[Recipient] = Field(default_factory=list)
    bcc: list[Recipient] = Field(default_factory=list)
    subject: str
    body_html: str
    importance: Importance = "normal"
    attachments: list[EmailAttachment] = Field(default_factory=list)
    reply_to: Optional[str] = None
    reply_type: Optional[ReplyType] = None

    def to_payload(self) -> dict[str, Any]:
        """Wire shape expected by the ``sendMessage`` action."""
        payload: dict[str, Any] = {
            "to": [r.model_dump(exclude_none=True) for r in self.to],
            "subject": self.subject,
            "bodyHtml": self.body_html,
            "importance": self.importance,
        }
        if self.cc:
            payload["cc"] = [r.model_dump(exclude_none=True) for r in self.cc]
        if self.bcc:
            payload["bcc"] = [r.model_dump(exclude_none=True) for r in self.bcc]
        if self.attachments:
            payload["attachments"] = [
                {"name": a.name, "contentType": a.mime_type, "url": a.url}
                for a in self.attachments
            ]
        if self.reply_to:
            payload["replyTo"] = self.reply_to
            payload["replyType"] = self.reply_type
        return payload
