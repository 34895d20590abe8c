"""
Paginated, filterable message list for the active folder.
"""

import logging
from typing import Optional

from email_suite.config import get_settings
from email_suite.core.cache import MailCache
from email_suite.core.events import MESSAGE_OPENED, MESSAGES_CHANGED, EventBus
from email_suite.core.exceptions import EmailSuiteError, UserInputError
from email_suite.core.generation import RequestGeneration
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.schemas.message import EmailMessage, MessageFilter, MessagePage
from email_suite.services.folder_sync import FolderSync

logger = logging.getLogger(__name__)

settings = get_settings()


class MessageStore:
    """
    Message list state for one (account, folder, filter) combination.

    Handles:
    - First page loads and ``load_more`` appends
    - Dropping responses for a folder/filter that is no longer active
    - Lazy full-message fetch on open
    - Optimistic read-flag, move and delete with rollback
    """

    def __init__(
        self,
        gateway: MailProviderGateway,
        cache: Optional[MailCache] = None,
        events: Optional[EventBus] = None,
        folder_sync: Optional[FolderSync] = None,
        page_size: Optional[int] = None,
    ):
        self.gateway = gateway
        self.cache = cache
        self.events = events or EventBus()
        self.folder_sync = folder_sync
        self.page_size = page_size or settings.message_page_size

        self.account_id: Optional[str] = None
        self.folder_id: Optional[str] = None
        self.filter = MessageFilter.ALL
        self.messages: list[EmailMessage] = []
        self.cursor: Optional[str] = None
        self.has_more = False
        self.is_loading = False
        self.is_loading_more = False

        self.selected_message: Optional[EmailMessage] = None
        self.is_loading_message = False

        self._page_generation = RequestGeneration()
        self._message_generation = RequestGeneration()

    # ============== Pages ==============

    async def load_page(
        self,
        folder_id: Optional[str],
        message_filter: MessageFilter = MessageFilter.ALL,
        cursor: Optional[str] = None,
        force: bool = False,
    ) -> MessagePage:
        """Fetch one page for the active account; no folder means an empty page."""
        if folder_id is None or self.account_id is None:
            return MessagePage()

        if self.cache and not force:
            cached = await self.cache.get_page(self.account_id, folder_id, message_filter, cursor)
            if cached is not None:
                return cached

        page = await self.gateway.list_messages(
            self.account_id,
            folder_id,
            message_filter=message_filter,
            limit=self.page_size,
            cursor=cursor,
        )
        if self.cache:
            await self.cache.set_page(self.account_id, folder_id, message_filter, cursor, page)
        return page

    async def open_folder(
        self,
        account_id: Optional[str],
        folder_id: Optional[str],
        message_filter: Optional[MessageFilter] = None,
        force: bool = False,
    ) -> list[EmailMessage]:
        """Discard the accumulated list and load the first page of a folder."""
        token = self._page_generation.next()
        self.account_id = account_id
        self.folder_id = folder_id
        if message_filter is not None:
            self.filter = MessageFilter(message_filter)
        self.messages = []
        self.cursor = None
        self.has_more = False
        self.is_loading_more = False
        self.close_message()
        self.events.publish(MESSAGES_CHANGED, [])

        self.is_loading = True
        try:
            page = await self.load_page(folder_id, self.filter, None, force=force)
        finally:
            if self._page_generation.is_current(token):
                self.is_loading = False

        if not self._page_generation.is_current(token):
            logger.debug(f"Dropping stale first page for folder {folder_id}")
            return page.messages

        self.messages = list(page.messages)
        self.cursor = page.next_cursor
        self.has_more = page.has_more
        self.events.publish(MESSAGES_CHANGED, list(self.messages))
        return list(self.messages)

    async def set_filter(self, message_filter: MessageFilter) -> list[EmailMessage]:
        return await self.open_folder(self.account_id, self.folder_id, message_filter)

    async def refresh(self) -> list[EmailMessage]:
        """Reload the first page bypassing the cache; an open message stays open."""
        if self.folder_id is None:
            return []

        token = self._page_generation.next()
        self.is_loading = True
        try:
            page = await self.load_page(self.folder_id, self.filter, None, force=True)
        finally:
            if self._page_generation.is_current(token):
                self.is_loading = False

        if not self._page_generation.is_current(token):
            logger.debug(f"Dropping stale refresh for folder {self.folder_id}")
            return page.messages

        self.messages = list(page.messages)
        self.cursor = page.next_cursor
        self.has_more = page.has_more
        self.is_loading_more = False
        self.events.publish(MESSAGES_CHANGED, list(self.messages))
        return list(self.messages)

    async def load_more(self) -> list[EmailMessage]:
        """Append the next page; a no-op while a load is running or at the end."""
        if self.is_loading or self.is_loading_more or not self.has_more or not self.cursor:
            return []

        token = self._page_generation.current
        self.is_loading_more = True
        try:
            page = await self.load_page(self.folder_id, self.filter, self.cursor)
        finally:
            if self._page_generation.is_current(token):
                self.is_loading_more = False

        if not self._page_generation.is_current(token):
            logger.debug(f"Dropping stale page for folder {self.folder_id}")
            return []

        known = {m.id for m in self.messages}
        appended = [m for m in page.messages if m.id not in known]
        self.messages.extend(appended)
        self.cursor = page.next_cursor
        self.has_more = page.has_more
        self.events.publish(MESSAGES_CHANGED, list(self.messages))
        return appended

    def reset(self) -> None:
        """Clear everything and supersede outstanding requests."""
        self._page_generation.next()
        self.account_id = None
        self.folder_id = None
        self.filter = MessageFilter.ALL
        self.messages = []
        self.cursor = None
        self.has_more = False
        self.is_loading = False
        self.is_loading_more = False
        self.close_message()
        self.events.publish(MESSAGES_CHANGED, [])

    # ============== Open Message ==============

    async def open_message(self, message_id: str, mark_read: bool = True) -> Optional[EmailMessage]:
        """
        Fetch the full message and make it the selected one.

        Returns None if another message was opened (or the view closed)
        before the fetch completed.
        """
        if self.account_id is None:
            raise UserInputError("No account selected", field="account_id")

        token = self._message_generation.next()
        self.is_loading_message = True
        try:
            message = await self.gateway.get_message(self.account_id, message_id)
        finally:
            if self._message_generation.is_current(token):
                self.is_loading_message = False

        if not self._message_generation.is_current(token):
            logger.debug(f"Dropping stale message {message_id}")
            return None

        if message.folder_id is None:
            _, listed = self._locate(message_id)
            message = message.moved_to(listed.folder_id if listed and listed.folder_id else self.folder_id)
        self.selected_message = message
        self.events.publish(MESSAGE_OPENED, message)

        if mark_read and not message.is_read:
            try:
                await self.mark_read(message_id)
            except EmailSuiteError as e:
                logger.warning(f"Could not mark {message_id} as read: {e}")

        return self.selected_message

    def close_message(self) -> None:
        self._message_generation.next()
        self.is_loading_message = False
        if self.selected_message is not None:
            self.selected_message = None
            self.events.publish(MESSAGE_OPENED, None)

    # ============== Optimistic Mutations ==============

    def _locate(self, message_id: str) -> tuple[Optional[int], Optional[EmailMessage]]:
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i, message
        if self.selected_message and self.selected_message.id == message_id:
            return None, self.selected_message
        return None, None

    def _set_read_flag(self, message_id: str, is_read: bool) -> None:
        for i, existing in enumerate(self.messages):
            if existing.id == message_id:
                self.messages[i] = existing.with_read_flag(is_read)
        if self.selected_message and self.selected_message.id == message_id:
            self.selected_message = self.selected_message.with_read_flag(is_read)

    def _adjust_unread(self, folder_id: Optional[str], delta: int) -> None:
        if self.folder_sync:
            self.folder_sync.adjust_unread(folder_id, delta)

    async def _invalidate(self) -> None:
        if self.cache and self.account_id:
            await self.cache.invalidate_messages(self.account_id)

    async def mark_read(self, message_id: str, is_read: bool = True) -> None:
        """Flip the read flag locally, then confirm with the gateway."""
        _, message = self._locate(message_id)
        if message is None:
            raise UserInputError(f"Unknown message: {message_id}", field="message_id")
        if message.is_read == is_read:
            return

        folder_id = message.folder_id or self.folder_id
        delta = -1 if is_read else 1
        self._set_read_flag(message_id, is_read)
        self._adjust_unread(folder_id, delta)
        self.events.publish(MESSAGES_CHANGED, list(self.messages))

        try:
            await self.gateway.mark_as_read(self.account_id, message_id, is_read)
        except Exception:
            logger.warning(f"Rolling back read flag on {message_id}")
            self._set_read_flag(message_id, message.is_read)
            self._adjust_unread(folder_id, -delta)
            self.events.publish(MESSAGES_CHANGED, list(self.messages))
            raise

        await self._invalidate()

    async def mark_unread(self, message_id: str) -> None:
        await self.mark_read(message_id, is_read=False)

    async def move_message(self, message_id: str, destination_folder_id: str) -> None:
        """Transfer a message to another folder; it leaves the visible page at once."""
        await self._remove(message_id, destination_folder_id)

    async def delete_message(self, message_id: str) -> None:
        await self._remove(message_id, None)

    async def _remove(self, message_id: str, destination_folder_id: Optional[str]) -> None:
        index, message = self._locate(message_id)
        if message is None:
            raise UserInputError(f"Unknown message: {message_id}", field="message_id")

        token = self._page_generation.current
        source_folder_id = message.folder_id or self.folder_id
        was_selected = self.selected_message is not None and self.selected_message.id == message_id

        if index is not None:
            del self.messages[index]
        if was_selected:
            self.selected_message = None
            self.events.publish(MESSAGE_OPENED, None)
        if not message.is_read:
            self._adjust_unread(source_folder_id, -1)
            self._adjust_unread(destination_folder_id, 1)
        self.events.publish(MESSAGES_CHANGED, list(self.messages))

        try:
            if destination_folder_id is None:
                await self.gateway.delete_message(self.account_id, message_id)
            else:
                await self.gateway.move_message(
                    self.account_id,
                    message_id,
                    destination_folder_id,
                    source_folder_id=source_folder_id,
                )
        except Exception:
            logger.warning(f"Rolling back removal of {message_id}")
            if index is not None and self._page_generation.is_current(token):
                if all(m.id != message_id for m in self.messages):
                    self.messages.insert(min(index, len(self.messages)), message)
            if was_selected and self.selected_message is None:
                self.selected_message = message
                self.events.publish(MESSAGE_OPENED, message)
            if not message.is_read:
                self._adjust_unread(source_folder_id, 1)
                self._adjust_unread(destination_folder_id, -1)
            self.events.publish(MESSAGES_CHANGED, list(self.messages))
            raise

        if destination_folder_id is None:
            logger.info(f"Deleted message {message_id}")
        else:
            logger.info(f"Moved message {message_id} to {destination_folder_id}")
        await self._invalidate()
