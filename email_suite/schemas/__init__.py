"""
Pydantic schemas for the email suite.
"""

from email_suite.schemas.account import (
    AuthorizationRequest,
    AuthorizationResult,
    EmailAccount,
    EmailProvider,
)
from email_suite.schemas.attachment import (
    EmailAttachment,
    LocalFile,
    UploadProgress,
)
from email_suite.schemas.compose import (
    ComposeDraft,
    OutgoingMessage,
)
from email_suite.schemas.folder import (
    EmailFolder,
    FolderType,
)
from email_suite.schemas.message import (
    EmailMessage,
    MessageFilter,
    MessagePage,
    Recipient,
)
from email_suite.schemas.signature import (
    EmailSignature,
    SignatureDraft,
    SocialLinks,
)

__all__ = [
    "AuthorizationRequest",
    "AuthorizationResult",
    "EmailAccount",
    "EmailProvider",
    "EmailAttachment",
    "LocalFile",
    "UploadProgress",
    "ComposeDraft",
    "OutgoingMessage",
    "EmailFolder",
    "FolderType",
    "EmailMessage",
    "MessageFilter",
    "MessagePage",
    "Recipient",
    "EmailSignature",
    "SignatureDraft",
    "SocialLinks",
]
