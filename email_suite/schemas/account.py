"""
Connected mail account schemas.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


EmailProvider = Literal["outlook", "gmail"]

PROVIDERS: tuple[str, ...] = ("outlook", "gmail")


class EmailAccount(BaseModel):
    """A mail account connected through OAuth."""

    id: str
    email_address: str
    provider: EmailProvider
    display_name: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    last_sync_at: Optional[datetime] = None
    sync_error: Optional[str] = None

    @property
    def has_sync_error(self) -> bool:
        return bool(self.sync_error)


class AuthorizationRequest(BaseModel):
    """Authorization URL handed to the UI to open the provider consent screen."""

    model_config = ConfigDict(populate_by_name=True)

    provider: EmailProvider
    auth_url: str = Field(alias="authUrl")
    state: str


class AuthorizationResult(BaseModel):
    """What the consent popup reported back."""

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
