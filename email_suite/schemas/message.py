"""
Message schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from email_suite.schemas.attachment import EmailAttachment


Importance = Literal["low", "normal", "high"]


class MessageFilter(str, Enum):
    """Closed set of message list filters."""

    ALL = "all"
    UNREAD = "unread"
    HAS_ATTACHMENTS = "has_attachments"


class Recipient(BaseModel):
    """A mailbox: address plus optional display name."""

    model_config = ConfigDict(frozen=True)

    email: str
    name: Optional[str] = None

    @property
    def display(self) -> str:
        return self.name or self.email


class EmailMessage(BaseModel):
    """
    A message as returned by the provider.

    Immutable apart from the read flag and the owning folder; both change
    through ``model_copy(update=...)`` so list snapshots stay consistent.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    folder_id: Optional[str] = Field(default=None, alias="folderId")
    provider: Optional[str] = None
    message_id: Optional[str] = Field(default=None, alias="messageId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    sender: Optional[Recipient] = Field(default=None, alias="from")
    to: list[Recipient] = Field(default_factory=list)
    cc: list[Recipient] = Field(default_factory=list)
    bcc: list[Recipient] = Field(default_factory=list)
    subject: str = ""
    body_preview: str = Field(default="", alias="bodyPreview")
    body_html: Optional[str] = Field(default=None, alias="bodyHtml")
    body_text: Optional[str] = Field(default=None, alias="bodyText")
    received_at: Optional[datetime] = Field(default=None, alias="receivedAt")
    is_read: bool = Field(default=False, alias="isRead")
    is_draft: bool = Field(default=False, alias="isDraft")
    importance: Importance = "normal"
    has_attachments: bool = Field(default=False, alias="hasAttachments")
    attachments: list[EmailAttachment] = Field(default_factory=list)
    web_link: Optional[str] = Field(default=None, alias="webLink")

    def with_read_flag(self, is_read: bool) -> "EmailMessage":
        return self.model_copy(update={"is_read": is_read})

    def moved_to(self, folder_id: str) -> "EmailMessage":
        return self.model_copy(update={"folder_id": folder_id})


class MessagePage(BaseModel):
    """One page of a folder listing."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[EmailMessage] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, alias="nextPageToken")
    has_more: bool = Field(default=False, alias="hasMore")
