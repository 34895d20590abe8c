"""
Mail Provider Gateway client.

Talks to the two hosted functions that front the mail providers:
- email-oauth: account listing and the OAuth connect/disconnect lifecycle
- email-api:   folders, messages, send and search for one account

Both take an ``{"action": ...}`` envelope and answer ``{"success", ...}``.
"""

import logging
from typing import Any, Optional

from email_suite.core.exceptions import GatewayError
from email_suite.core.http_client import BackendClient
from email_suite.schemas.account import (
    AuthorizationRequest,
    EmailAccount,
    EmailProvider,
)
from email_suite.schemas.compose import OutgoingMessage
from email_suite.schemas.folder import EmailFolder
from email_suite.schemas.message import EmailMessage, MessageFilter, MessagePage

logger = logging.getLogger(__name__)


class MailProviderGateway(BackendClient):
    """
    Client for the mail provider functions.

    Provides methods to:
    - List, connect, disconnect and set the default mail account
    - List folders and paginated messages, fetch a full message
    - Mark read, move, delete, send and search messages

    Reads are retried on transport failures and rate limiting; sending is
    never retried automatically.
    """

    OAUTH_ENDPOINT = "/functions/v1/email-oauth"
    MAIL_ENDPOINT = "/functions/v1/email-api"

    async def _oauth(self, action: str, retry: bool = True, **payload) -> dict:
        body = await self._request(
            "POST",
            self.OAUTH_ENDPOINT,
            retry=retry,
            json={"action": action, **payload},
        )
        return self._unwrap(action, body)

    async def _mail(
        self,
        action: str,
        account_id: str,
        retry: bool = True,
        **payload,
    ) -> Any:
        body = await self._request(
            "POST",
            self.MAIL_ENDPOINT,
            retry=retry,
            json={"action": action, "accountId": account_id, **payload},
        )
        return self._unwrap(action, body).get("data")

    @staticmethod
    def _unwrap(action: str, body: Any) -> dict:
        if not isinstance(body, dict):
            raise GatewayError(f"Unexpected response to {action}")
        if body.get("success") is False or (body.get("error") and "success" not in body):
            raise GatewayError(str(body.get("error") or f"{action} failed"), error_code=action)
        return body

    # ============== Account Operations ==============

    async def list_accounts(self, user_id: str) -> list[EmailAccount]:
        """List connected accounts in connection order."""
        body = await self._oauth("listAccounts", userId=user_id)
        return [EmailAccount.model_validate(a) for a in body.get("accounts") or []]

    async def get_auth_url(self, provider: EmailProvider, user_id: str) -> AuthorizationRequest:
        """Begin the OAuth flow; the UI opens ``auth_url`` out of band."""
        body = await self._oauth("getAuthUrl", retry=False, provider=provider, userId=user_id)
        return AuthorizationRequest(provider=provider, auth_url=body["authUrl"], state=body["state"])

    async def complete_authorization(self, code: str, state: str) -> EmailAccount:
        """Exchange the authorization code; returns the newly connected account."""
        body = await self._oauth("callback", retry=False, code=code, state=state)
        return EmailAccount.model_validate(body["account"])

    async def disconnect_account(self, account_id: str) -> None:
        await self._oauth("disconnect", retry=False, accountId=account_id)

    async def set_default_account(self, account_id: str, user_id: str) -> None:
        """Clear-then-set on the backend; concurrent writers resolve last-write-wins."""
        await self._oauth("setDefault", retry=False, accountId=account_id, userId=user_id)

    # ============== Folder Operations ==============

    async def list_folders(self, account_id: str) -> list[EmailFolder]:
        data = await self._mail("listFolders", account_id) or []
        folders = []
        for item in data:
            item = dict(item)
            item.setdefault("accountId", account_id)
            folders.append(EmailFolder.model_validate(item))
        return folders

    # ============== Message Operations ==============

    async def list_messages(
        self,
        account_id: str,
        folder_id: str,
        message_filter: MessageFilter = MessageFilter.ALL,
        limit: int = 25,
        cursor: Optional[str] = None,
    ) -> MessagePage:
        """
        Fetch one page of a folder.

        Returns a MessagePage; ``has_more`` falls back to the presence of a
        continuation token when the provider does not report it.
        """
        payload: dict[str, Any] = {
            "folderId": folder_id,
            "limit": limit,
            "filter": message_filter.value,
        }
        if cursor:
            payload["pageToken"] = cursor

        data = await self._mail("listMessages", account_id, **payload) or {}
        next_cursor = data.get("nextPageToken") or data.get("nextLink")
        messages = []
        for item in data.get("messages") or []:
            item = dict(item)
            item.setdefault("folderId", folder_id)
            messages.append(EmailMessage.model_validate(item))
        return MessagePage(
            messages=messages,
            next_cursor=next_cursor,
            has_more=data.get("hasMore", next_cursor is not None),
        )

    async def get_message(self, account_id: str, message_id: str) -> EmailMessage:
        """Fetch a single message with full body content."""
        data = await self._mail("getMessage", account_id, messageId=message_id)
        return EmailMessage.model_validate(data)

    async def mark_as_read(self, account_id: str, message_id: str, is_read: bool = True) -> None:
        await self._mail("markAsRead", account_id, messageId=message_id, isRead=is_read)

    async def move_message(
        self,
        account_id: str,
        message_id: str,
        destination_folder_id: str,
        source_folder_id: Optional[str] = None,
    ) -> None:
        await self._mail(
            "moveMessage",
            account_id,
            retry=False,
            messageId=message_id,
            destinationFolderId=destination_folder_id,
            sourceFolderId=source_folder_id,
        )

    async def delete_message(self, account_id: str, message_id: str) -> None:
        await self._mail("deleteMessage", account_id, retry=False, messageId=message_id)

    async def send_message(self, account_id: str, message: OutgoingMessage) -> None:
        """Send a message. Never retried automatically."""
        await self._mail("sendMessage", account_id, retry=False, message=message.to_payload())
        logger.info(f"Sent message from account {account_id} to {len(message.to)} recipient(s)")

    async def search_messages(
        self,
        account_id: str,
        query: str,
        limit: int = 50,
    ) -> list[EmailMessage]:
        """Full-text search within one account."""
        data = await self._mail("searchMessages", account_id, query=query, limit=limit) or []
        if isinstance(data, dict):
            data = data.get("messages") or []
        return [EmailMessage.model_validate(item) for item in data]
