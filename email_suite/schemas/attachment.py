"""
Attachment schemas.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmailAttachment(BaseModel):
    """Attachment metadata on a message or a draft."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    mime_type: str = Field(default="application/octet-stream", alias="mimeType")
    size: int = Field(default=0, ge=0)
    url: Optional[str] = None
    content_id: Optional[str] = Field(default=None, alias="contentId")
    is_inline: bool = Field(default=False, alias="isInline")

    @property
    def identity(self) -> tuple[str, int]:
        """Duplicate-detection key within one draft or message."""
        return (self.name, self.size)


@dataclass
class LocalFile:
    """A file picked or dropped by the user, not yet uploaded."""

    name: str
    content: bytes
    mime_type: str = "application/octet-stream"
    size: int = field(default=-1)

    def __post_init__(self) -> None:
        if self.size < 0:
            self.size = len(self.content)

    @property
    def identity(self) -> tuple[str, int]:
        return (self.name, self.size)

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


UploadStatus = Literal["uploading", "done", "failed", "cancelled"]


class UploadProgress(BaseModel):
    """Progress of one in-flight upload."""

    upload_id: str
    name: str
    size: int
    percent: int = Field(default=0, ge=0, le=100)
    status: UploadStatus = "uploading"
    error: Optional[str] = None
