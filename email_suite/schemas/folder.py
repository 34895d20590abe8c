"""
Mail folder schemas.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FolderType(str, Enum):
    """Folder types; everything except CUSTOM is a system folder."""

    INBOX = "inbox"
    SENT = "sent"
    DRAFTS = "drafts"
    TRASH = "trash"
    SPAM = "spam"
    ARCHIVE = "archive"
    CUSTOM = "custom"


# Canonical position of system folders in the folder list
SYSTEM_FOLDER_ORDER: tuple[FolderType, ...] = (
    FolderType.INBOX,
    FolderType.SENT,
    FolderType.DRAFTS,
    FolderType.TRASH,
    FolderType.SPAM,
    FolderType.ARCHIVE,
)


class EmailFolder(BaseModel):
    """A folder (Outlook) or label (Gmail) belonging to one account."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    account_id: Optional[str] = Field(default=None, alias="accountId")
    name: str = ""
    display_name: str = Field(default="", alias="displayName")
    type: FolderType = FolderType.CUSTOM
    unread_count: int = Field(default=0, ge=0, alias="unreadCount")
    total_count: int = Field(default=0, ge=0, alias="totalCount")
    parent_id: Optional[str] = Field(default=None, alias="parentId")

    @field_validator("type", mode="before")
    @classmethod
    def _unknown_types_are_custom(cls, value):
        if isinstance(value, FolderType):
            return value
        try:
            return FolderType(str(value).lower())
        except ValueError:
            return FolderType.CUSTOM

    @property
    def label(self) -> str:
        return self.display_name or self.name

    @property
    def is_system(self) -> bool:
        return self.type in SYSTEM_FOLDER_ORDER
