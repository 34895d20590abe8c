"""
Folder loading, ordering and unread counts for the selected account.
"""

import logging
from typing import Optional

from email_suite.core.cache import MailCache
from email_suite.core.events import FOLDER_SELECTED, FOLDERS_CHANGED, EventBus
from email_suite.core.exceptions import UserInputError
from email_suite.core.generation import RequestGeneration
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.schemas.folder import SYSTEM_FOLDER_ORDER, EmailFolder, FolderType

logger = logging.getLogger(__name__)

UNREAD_DISPLAY_CAP = 99


def format_unread_count(count: int) -> str:
    """Display form of an unread count; the stored count is never truncated."""
    if count > UNREAD_DISPLAY_CAP:
        return f"{UNREAD_DISPLAY_CAP}+"
    return str(max(count, 0))


def _sort_key(folder: EmailFolder) -> tuple:
    if folder.type in SYSTEM_FOLDER_ORDER:
        return (0, SYSTEM_FOLDER_ORDER.index(folder.type), "")
    return (1, 0, folder.label.casefold())


def sort_folders(folders: list[EmailFolder]) -> list[EmailFolder]:
    """System folders in canonical order, then custom folders by name."""
    return sorted(folders, key=_sort_key)


class FolderSync:
    """Loads and orders folders for one account at a time."""

    def __init__(
        self,
        gateway: MailProviderGateway,
        cache: Optional[MailCache] = None,
        events: Optional[EventBus] = None,
    ):
        self.gateway = gateway
        self.cache = cache
        self.events = events or EventBus()

        self.account_id: Optional[str] = None
        self.folders: list[EmailFolder] = []
        self.selected_folder_id: Optional[str] = None
        self.is_loading = False
        self._generation = RequestGeneration()
        self._applied = 0

    # ============== Loading ==============

    async def load_folders(self, account_id: str, force: bool = False) -> list[EmailFolder]:
        """
        Load the folder list for ``account_id``.

        Reads through the cache unless ``force``; a response for an account
        that is no longer active is returned but not applied. Overlapping
        loads for the same account apply unless a newer one already landed.
        """
        token = self._generation.next()
        if account_id != self.account_id:
            self.selected_folder_id = None
        self.account_id = account_id

        folders = None
        if self.cache and not force:
            folders = await self.cache.get_folders(account_id)

        if folders is None:
            self.is_loading = True
            try:
                folders = await self.gateway.list_folders(account_id)
            finally:
                if self._generation.is_current(token):
                    self.is_loading = False
            if self.cache:
                await self.cache.set_folders(account_id, folders)

        ordered = sort_folders(folders)
        if account_id != self.account_id or token < self._applied:
            logger.debug(f"Dropping stale folder list for account {account_id}")
            return ordered

        self._applied = token
        self.folders = ordered
        if self.selected_folder_id and self.get(self.selected_folder_id) is None:
            self.selected_folder_id = None
        logger.info(f"Loaded {len(ordered)} folder(s) for account {account_id}")
        self.events.publish(FOLDERS_CHANGED, list(self.folders))
        return list(ordered)

    def reset(self) -> None:
        """Forget the current account's folders, superseding any pending load."""
        self._applied = self._generation.next()
        self.account_id = None
        self.folders = []
        self.selected_folder_id = None
        self.is_loading = False
        self.events.publish(FOLDERS_CHANGED, [])

    # ============== Lookups ==============

    def get(self, folder_id: str) -> Optional[EmailFolder]:
        return next((f for f in self.folders if f.id == folder_id), None)

    def find_by_type(self, folder_type: FolderType) -> Optional[EmailFolder]:
        return next((f for f in self.folders if f.type == folder_type), None)

    @property
    def default_folder(self) -> Optional[EmailFolder]:
        """The inbox, else the first folder."""
        return self.find_by_type(FolderType.INBOX) or (self.folders[0] if self.folders else None)

    @property
    def selected_folder(self) -> Optional[EmailFolder]:
        if self.selected_folder_id is None:
            return None
        return self.get(self.selected_folder_id)

    # ============== Selection & Counts ==============

    def select_folder(self, folder_id: str) -> EmailFolder:
        folder = self.get(folder_id)
        if folder is None:
            raise UserInputError(f"Unknown folder: {folder_id}", field="folder_id")
        self.selected_folder_id = folder_id
        self.events.publish(FOLDER_SELECTED, folder)
        return folder

    def adjust_unread(self, folder_id: Optional[str], delta: int) -> None:
        """Shift a folder's unread count, clamped at zero."""
        if folder_id is None:
            return
        for i, folder in enumerate(self.folders):
            if folder.id == folder_id:
                count = max(folder.unread_count + delta, 0)
                self.folders[i] = folder.model_copy(update={"unread_count": count})
                self.events.publish(FOLDERS_CHANGED, list(self.folders))
                return

    def unread_label(self, folder_id: str) -> str:
        folder = self.get(folder_id)
        return format_unread_count(folder.unread_count if folder else 0)
