"""
Account manager for connected mail accounts.
"""

import logging
from typing import Awaitable, Callable, Optional

from email_suite.core.events import ACCOUNT_SELECTED, ACCOUNTS_CHANGED, EventBus
from email_suite.core.exceptions import (
    ConfirmationRequired,
    ConnectCancelled,
    GatewayError,
    UserInputError,
)
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.schemas.account import (
    PROVIDERS,
    AuthorizationRequest,
    AuthorizationResult,
    EmailAccount,
    EmailProvider,
)

logger = logging.getLogger(__name__)

# Opens the consent screen out of band and reports what came back
AuthorizeCallback = Callable[[AuthorizationRequest], Awaitable[Optional[AuthorizationResult]]]


class AccountManager:
    """
    Tracks the user's connected accounts and the selected one.

    Handles:
    - Loading accounts and falling back to the default selection
    - The OAuth connect flow and confirmed disconnects
    - The at-most-one default account invariant
    """

    def __init__(
        self,
        gateway: MailProviderGateway,
        user_id: str,
        events: Optional[EventBus] = None,
        authorize: Optional[AuthorizeCallback] = None,
    ):
        self.gateway = gateway
        self.user_id = user_id
        self.events = events or EventBus()
        self.authorize = authorize

        self.accounts: list[EmailAccount] = []
        self.selected_account_id: Optional[str] = None
        self.connecting_provider: Optional[EmailProvider] = None
        self.is_loading = False

    # ============== Lookups ==============

    def get(self, account_id: str) -> Optional[EmailAccount]:
        return next((a for a in self.accounts if a.id == account_id), None)

    @property
    def default_account(self) -> Optional[EmailAccount]:
        return next((a for a in self.accounts if a.is_default), None)

    @property
    def selected_account(self) -> Optional[EmailAccount]:
        if self.selected_account_id is None:
            return None
        return self.get(self.selected_account_id)

    # ============== Loading & Selection ==============

    async def list_accounts(self) -> list[EmailAccount]:
        """Load accounts from the gateway and reconcile the selection."""
        self.is_loading = True
        try:
            accounts = await self.gateway.list_accounts(self.user_id)
        finally:
            self.is_loading = False

        self.accounts = accounts
        logger.info(f"Loaded {len(accounts)} mail account(s) for user {self.user_id}")
        self.events.publish(ACCOUNTS_CHANGED, list(self.accounts))
        self._ensure_selection()
        return list(self.accounts)

    def select(self, account_id: Optional[str]) -> None:
        """Select an account; downstream folder/message state resets on change."""
        if account_id is not None and self.get(account_id) is None:
            raise UserInputError(f"Unknown account: {account_id}", field="account_id")
        if account_id == self.selected_account_id:
            return
        self.selected_account_id = account_id
        self.events.publish(ACCOUNT_SELECTED, account_id)

    def _ensure_selection(self) -> None:
        if self.selected_account is not None:
            return
        fallback = self.default_account or (self.accounts[0] if self.accounts else None)
        target = fallback.id if fallback else None
        if target == self.selected_account_id:
            return
        self.selected_account_id = target
        self.events.publish(ACCOUNT_SELECTED, target)

    # ============== Connect / Disconnect ==============

    async def connect(
        self,
        provider: EmailProvider,
        authorize: Optional[AuthorizeCallback] = None,
    ) -> EmailAccount:
        """
        Run the OAuth connect flow for ``provider``.

        Args:
            provider: "outlook" or "gmail"
            authorize: Coroutine that opens ``auth_url`` and returns the
                consent result; defaults to the one given at construction

        Returns:
            The newly connected account

        Failures propagate without touching the account list.
        """
        if provider not in PROVIDERS:
            raise UserInputError(f"Unsupported provider: {provider}", field="provider")
        authorize = authorize or self.authorize
        if authorize is None:
            raise RuntimeError("No authorization handler configured")

        self.connecting_provider = provider
        try:
            request = await self.gateway.get_auth_url(provider, self.user_id)
            result = await authorize(request)
            if result is None or result.error or not result.code:
                reason = result.error if result and result.error else "Authorization cancelled"
                raise ConnectCancelled(reason)
            if result.state and result.state != request.state:
                raise GatewayError("Authorization state mismatch", error_code="state_mismatch")
            account = await self.gateway.complete_authorization(
                result.code,
                result.state or request.state,
            )
        except Exception as e:
            logger.warning(f"Connecting {provider} account failed: {e}")
            raise
        finally:
            self.connecting_provider = None

        self._upsert(account)
        logger.info(f"Connected {provider} account {account.email_address}")
        self.events.publish(ACCOUNTS_CHANGED, list(self.accounts))
        self._ensure_selection()
        return account

    def _upsert(self, account: EmailAccount) -> None:
        accounts = [a for a in self.accounts if a.id != account.id]
        if account.is_default:
            accounts = [a.model_copy(update={"is_default": False}) for a in accounts]
        position = next((i for i, a in enumerate(self.accounts) if a.id == account.id), None)
        if position is None:
            accounts.append(account)
        else:
            accounts.insert(position, account)
        self.accounts = accounts

    async def disconnect(self, account_id: str, confirmed: bool = False) -> None:
        """
        Disconnect an account after explicit confirmation.

        If the default account goes away the first remaining account becomes
        the default, and the selection falls back to it (or None).
        """
        account = self.get(account_id)
        if account is None:
            raise UserInputError(f"Unknown account: {account_id}", field="account_id")
        if not confirmed:
            raise ConfirmationRequired(
                f"Disconnect {account.email_address}?",
                reason=ConfirmationRequired.DISCONNECT_ACCOUNT,
            )

        await self.gateway.disconnect_account(account_id)

        remaining = [a for a in self.accounts if a.id != account_id]
        if account.is_default and remaining and not any(a.is_default for a in remaining):
            remaining[0] = remaining[0].model_copy(update={"is_default": True})
        self.accounts = remaining
        logger.info(f"Disconnected account {account.email_address}")
        self.events.publish(ACCOUNTS_CHANGED, list(self.accounts))

        self._ensure_selection()

    # ============== Default Account ==============

    async def set_default(self, account_id: str) -> None:
        """Flag ``account_id`` as default, clearing every other flag first."""
        if self.get(account_id) is None:
            raise UserInputError(f"Unknown account: {account_id}", field="account_id")

        previous = self.accounts
        self.accounts = [
            a.model_copy(update={"is_default": a.id == account_id}) for a in previous
        ]
        self.events.publish(ACCOUNTS_CHANGED, list(self.accounts))

        try:
            await self.gateway.set_default_account(account_id, self.user_id)
        except Exception:
            logger.warning(f"Rolling back default account change to {account_id}")
            self.accounts = previous
            self.events.publish(ACCOUNTS_CHANGED, list(self.accounts))
            raise

        logger.info(f"Default account set to {account_id}")
