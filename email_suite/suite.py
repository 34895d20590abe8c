"""
MailSuite: wires accounts, folders, messages, search and compose together.
"""

import logging
from typing import Iterable, Mapping, Optional

from email_suite.config import Settings, get_settings
from email_suite.core.cache import MailCache
from email_suite.core.events import EventBus
from email_suite.core.exceptions import GatewayError
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.core.sanitizer import RenderedBody, render_body
from email_suite.core.signature_store import SignatureStore
from email_suite.core.storage_gateway import StorageGateway
from email_suite.schemas.account import EmailAccount, EmailProvider
from email_suite.schemas.attachment import EmailAttachment, LocalFile
from email_suite.schemas.compose import ComposeDraft
from email_suite.schemas.message import EmailMessage, MessageFilter, Recipient
from email_suite.services.account_manager import AccountManager, AuthorizeCallback
from email_suite.services.attachment_pipeline import AttachmentPipeline
from email_suite.services.compose_controller import ComposeController
from email_suite.services.folder_sync import FolderSync
from email_suite.services.message_store import MessageStore
from email_suite.services.search_controller import SearchController
from email_suite.services.signature_manager import SignatureManager
from email_suite.services.signature_resolver import SignatureResolver
from email_suite.services.sync_poller import SyncPoller

logger = logging.getLogger(__name__)

REPLY_PREFIX = "Re:"
FORWARD_PREFIX = "Fwd:"


def prefixed_subject(subject: str, prefix: str) -> str:
    """``Re:``/``Fwd:`` convention; a subject that already carries the prefix is unchanged."""
    subject = subject or ""
    if subject.lower().startswith(prefix.lower()):
        return subject
    return f"{prefix} {subject}".rstrip()


class MailSuite:
    """
    The email client core for one signed-in user.

    Control flow: the selected account drives the folder list, the
    selected folder drives the message list, and opening a message loads
    its full body. Search overlays the message list while active.
    """

    def __init__(
        self,
        user_id: str,
        gateway: MailProviderGateway,
        storage: StorageGateway,
        signature_store: SignatureStore,
        cache: Optional[MailCache] = None,
        events: Optional[EventBus] = None,
        profile: Optional[Mapping[str, Optional[str]]] = None,
        authorize: Optional[AuthorizeCallback] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.user_id = user_id
        self.gateway = gateway
        self.cache = cache
        self.events = events or EventBus()

        self.accounts = AccountManager(gateway, user_id, events=self.events, authorize=authorize)
        self.folders = FolderSync(gateway, cache=cache, events=self.events)
        self.messages = MessageStore(
            gateway,
            cache=cache,
            events=self.events,
            folder_sync=self.folders,
            page_size=settings.message_page_size,
        )
        self.search_controller = SearchController(
            gateway,
            self.accounts,
            events=self.events,
            debounce_seconds=settings.search_debounce_seconds,
            limit=settings.search_limit,
        )
        self.uploads = AttachmentPipeline(
            storage,
            user_id,
            events=self.events,
            max_bytes=settings.attachment_max_bytes,
            max_files=settings.attachment_max_files,
            error_clear_seconds=settings.upload_error_clear_seconds,
        )
        self.signatures = SignatureManager(
            signature_store,
            user_id,
            storage=storage,
            events=self.events,
        )
        self.resolver = SignatureResolver(profile)
        self.compose = ComposeController(
            gateway,
            self.accounts,
            self.uploads,
            signatures=self.signatures,
            resolver=self.resolver,
            events=self.events,
        )
        self.poller = SyncPoller(self.sync, settings.sync_interval_seconds)
        self.is_syncing = False

    # ============== Lifecycle ==============

    async def start(self) -> None:
        """Load accounts and signatures, then the default account's inbox."""
        await self.accounts.list_accounts()
        try:
            await self.signatures.load()
        except GatewayError as e:
            logger.warning(f"Signatures unavailable: {e}")
        await self._activate_account(self.accounts.selected_account_id)
        self.poller.start()

    async def stop(self) -> None:
        """Logout teardown: stop polling and drop the open draft."""
        await self.poller.stop()
        self.compose.close()
        self.uploads.cancel_all()
        self.search_controller.clear()

    async def sync(self) -> None:
        """Refresh folders and the visible page, bypassing the cache."""
        account = self.accounts.selected_account
        if account is None:
            return
        self.is_syncing = True
        try:
            await self.folders.load_folders(account.id, force=True)
            if self.accounts.selected_account_id == account.id and self.messages.folder_id:
                await self.messages.refresh()
        finally:
            self.is_syncing = False

    # ============== Accounts ==============

    async def _activate_account(self, account_id: Optional[str]) -> None:
        self.search_controller.clear()
        self.messages.reset()
        self.folders.reset()
        if account_id is None:
            return

        await self.folders.load_folders(account_id)
        if self.accounts.selected_account_id != account_id:
            return
        if self.folders.selected_folder_id is None:
            folder = self.folders.default_folder
            if folder is not None:
                await self.select_folder(folder.id)

    async def _follow_selection(self, previous: Optional[str]) -> None:
        if self.accounts.selected_account_id != previous:
            await self._activate_account(self.accounts.selected_account_id)

    async def select_account(self, account_id: str) -> None:
        previous = self.accounts.selected_account_id
        self.accounts.select(account_id)
        await self._follow_selection(previous)

    async def connect_account(
        self,
        provider: EmailProvider,
        authorize: Optional[AuthorizeCallback] = None,
    ) -> EmailAccount:
        previous = self.accounts.selected_account_id
        account = await self.accounts.connect(provider, authorize)
        await self._follow_selection(previous)
        return account

    async def disconnect_account(self, account_id: str, confirmed: bool = False) -> None:
        previous = self.accounts.selected_account_id
        await self.accounts.disconnect(account_id, confirmed=confirmed)
        if self.cache:
            await self.cache.invalidate_account(account_id)
        await self._follow_selection(previous)

    async def set_default_account(self, account_id: str) -> None:
        await self.accounts.set_default(account_id)

    # ============== Folders & Messages ==============

    async def select_folder(self, folder_id: str) -> list[EmailMessage]:
        """Select a folder: clears search and restarts pagination."""
        self.folders.select_folder(folder_id)
        self.search_controller.clear()
        return await self.messages.open_folder(
            self.accounts.selected_account_id,
            folder_id,
        )

    async def set_filter(self, message_filter: MessageFilter) -> list[EmailMessage]:
        return await self.messages.set_filter(MessageFilter(message_filter))

    async def load_more(self) -> list[EmailMessage]:
        return await self.messages.load_more()

    async def open_message(self, message_id: str) -> Optional[EmailMessage]:
        return await self.messages.open_message(message_id)

    def close_message(self) -> None:
        self.messages.close_message()

    async def mark_read(self, message_id: str) -> None:
        await self.messages.mark_read(message_id)

    async def mark_unread(self, message_id: str) -> None:
        await self.messages.mark_unread(message_id)

    async def move_message(self, message_id: str, destination_folder_id: str) -> None:
        await self.messages.move_message(message_id, destination_folder_id)

    async def delete_message(self, message_id: str) -> None:
        await self.messages.delete_message(message_id)

    @property
    def visible_messages(self) -> list[EmailMessage]:
        """Search results while a search is active, otherwise the folder page."""
        if self.search_controller.is_active:
            return list(self.search_controller.results)
        return list(self.messages.messages)

    @staticmethod
    def render_body(message: EmailMessage) -> RenderedBody:
        return render_body(message)

    # ============== Search ==============

    async def search(self, query: str) -> list[EmailMessage]:
        return await self.search_controller.search(query)

    def clear_search(self) -> None:
        self.search_controller.clear()

    # ============== Compose ==============

    def _own_addresses(self) -> list[str]:
        return [a.email_address for a in self.accounts.accounts]

    def new_message(
        self,
        to: Optional[Iterable[Recipient]] = None,
        subject: str = "",
        body_html: str = "",
    ) -> ComposeDraft:
        return self.compose.open_new(to=to, subject=subject, body_html=body_html)

    def reply(self, message: EmailMessage, reply_all: bool = False) -> ComposeDraft:
        return self.compose.open_reply(
            message,
            reply_all=reply_all,
            subject=prefixed_subject(message.subject, REPLY_PREFIX),
            exclude=self._own_addresses() if reply_all else (),
        )

    def forward(self, message: EmailMessage) -> ComposeDraft:
        return self.compose.open_forward(
            message,
            subject=prefixed_subject(message.subject, FORWARD_PREFIX),
        )

    async def attach(self, files: Iterable[LocalFile]) -> list[EmailAttachment]:
        return await self.compose.attach(files)

    async def send(self, confirmed_empty_subject: bool = False) -> bool:
        account = self.accounts.selected_account
        sent = await self.compose.send(confirmed_empty_subject=confirmed_empty_subject)
        if sent and self.cache and account is not None:
            await self.cache.invalidate_messages(account.id)
        return sent
