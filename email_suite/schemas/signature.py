"""
Email signature schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


DEFAULT_LOGO_WIDTH = 150
MIN_LOGO_WIDTH = 50
MAX_LOGO_WIDTH = 400

# Placeholders recognised inside a signature template
PLACEHOLDER_FIELDS: tuple[str, ...] = ("name", "title", "company", "phone", "email")


class SocialLinks(BaseModel):
    """Optional social profile links appended under a signature."""

    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    youtube: Optional[str] = None
    website: Optional[str] = None


class EmailSignature(BaseModel):
    """A stored signature template."""

    id: str
    name: str
    html_content: str = ""
    plain_text_content: Optional[str] = None
    logo_url: Optional[str] = None
    logo_width: int = Field(
        default=DEFAULT_LOGO_WIDTH,
        ge=MIN_LOGO_WIDTH,
        le=MAX_LOGO_WIDTH,
    )
    logo_height: Optional[int] = None
    include_social_links: bool = False
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("logo_width", mode="before")
    @classmethod
    def _default_logo_width(cls, value):
        return DEFAULT_LOGO_WIDTH if value is None else value

    @field_validator("social_links", mode="before")
    @classmethod
    def _empty_social_links(cls, value):
        return value or {}


class SignatureDraft(BaseModel):
    """Create/update request for a signature record."""

    id: Optional[str] = None
    name: str
    html_content: str = ""
    plain_text_content: Optional[str] = None
    logo_url: Optional[str] = None
    logo_width: int = Field(
        default=DEFAULT_LOGO_WIDTH,
        ge=MIN_LOGO_WIDTH,
        le=MAX_LOGO_WIDTH,
    )
    logo_height: Optional[int] = None
    include_social_links: bool = False
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    is_default: bool = False
