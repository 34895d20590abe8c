"""
Error types raised by the email suite.

Validation problems block the triggering action locally and never reach a
gateway; gateway errors leave the triggering operation retryable.
"""

from typing import Optional


class EmailSuiteError(Exception):
    """Base class for every email suite error."""


class UserInputError(EmailSuiteError):
    """A user action failed local validation (missing recipient, bad file...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AttachmentRejected(UserInputError):
    """A file was refused before upload."""

    TOO_LARGE = "too_large"
    DUPLICATE = "duplicate"
    TOO_MANY = "too_many"

    def __init__(self, message: str, filename: str, reason: str):
        super().__init__(message, field="attachments")
        self.filename = filename
        self.reason = reason


class ConfirmationRequired(EmailSuiteError):
    """The action needs explicit user consent; retry with ``confirmed=True``."""

    EMPTY_SUBJECT = "empty_subject"
    DISCONNECT_ACCOUNT = "disconnect_account"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class InvalidTransition(EmailSuiteError):
    """A compose action is not allowed from the current window state."""


class ConnectCancelled(EmailSuiteError):
    """The out-of-band account authorization was abandoned."""


class GatewayError(EmailSuiteError):
    """Network or provider failure reported by an external collaborator."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class AuthenticationError(GatewayError):
    """No active session, or the provider rejected the token."""

    retryable = False


class RateLimitedError(GatewayError):
    """The provider throttled the request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=status_code, error_code="rate_limited")
        self.retry_after = retry_after
