"""Shared fixtures and fakes for the email suite tests."""

import asyncio
import itertools
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import pytest

from email_suite.core.cache import MailCache, MemoryCache
from email_suite.core.events import EventBus
from email_suite.core.exceptions import GatewayError
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.core.signature_store import SignatureStore
from email_suite.schemas.account import EmailAccount
from email_suite.schemas.attachment import LocalFile
from email_suite.schemas.folder import EmailFolder
from email_suite.schemas.message import EmailMessage, MessagePage, Recipient


# =============================================================================
# Fakes
# =============================================================================

class FakeStorage:
    """In-memory stand-in for StorageGateway with per-file gates and failures."""

    def __init__(self):
        self.uploaded: list[str] = []
        self.fail_names: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.started: list[str] = []

    async def upload_file(
        self,
        file: LocalFile,
        path_hint: str,
        on_progress: Optional[Callable[[int, int], None]] = None,
        cache_control: Optional[str] = None,
    ) -> dict:
        self.started.append(file.name)
        total = len(file.content)
        if on_progress and total:
            on_progress(total // 2, total)
        gate = self.gates.get(file.name)
        if gate is not None:
            await gate.wait()
        if file.name in self.fail_names:
            raise GatewayError(f"storage rejected {file.name}")
        if on_progress:
            on_progress(total, total)
        self.uploaded.append(path_hint)
        return {"path": path_hint, "url": f"https://cdn.test/{path_hint}"}


class Collector:
    """Records every event published on a bus."""

    def __init__(self, bus: EventBus):
        self.events: list[tuple[str, Any]] = []
        bus.subscribe("*", lambda event, payload: self.events.append((event, payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> list[Any]:
        return [payload for event, payload in self.events if event == name]


# =============================================================================
# Model factories
# =============================================================================

_ids = itertools.count(1)


@pytest.fixture
def make_account() -> Callable[..., EmailAccount]:
    def factory(account_id: Optional[str] = None, **overrides) -> EmailAccount:
        n = next(_ids)
        data = {
            "id": account_id or f"acc-{n}",
            "email_address": f"user{n}@example.com",
            "provider": "outlook",
        }
        data.update(overrides)
        return EmailAccount(**data)

    return factory


@pytest.fixture
def make_folder() -> Callable[..., EmailFolder]:
    def factory(folder_id: str, folder_type: str = "custom", name: Optional[str] = None, **overrides) -> EmailFolder:
        data = {
            "id": folder_id,
            "name": name or folder_id,
            "displayName": name or folder_id,
            "type": folder_type,
        }
        data.update(overrides)
        return EmailFolder.model_validate(data)

    return factory


@pytest.fixture
def make_message() -> Callable[..., EmailMessage]:
    def factory(message_id: Optional[str] = None, **overrides) -> EmailMessage:
        n = next(_ids)
        data = {
            "id": message_id or f"msg-{n}",
            "folderId": "inbox",
            "from": {"email": "alice@example.com", "name": "Alice"},
            "to": [{"email": "me@example.com"}],
            "subject": f"Subject {n}",
            "bodyPreview": "preview",
            "isRead": False,
        }
        data.update(overrides)
        return EmailMessage.model_validate(data)

    return factory


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def collector(events: EventBus) -> Collector:
    return Collector(events)


@pytest.fixture
def gateway() -> AsyncMock:
    gateway = AsyncMock(spec=MailProviderGateway)
    gateway.list_accounts.return_value = []
    gateway.list_folders.return_value = []
    gateway.list_messages.return_value = MessagePage()
    gateway.search_messages.return_value = []
    return gateway


@pytest.fixture
def signature_store() -> AsyncMock:
    store = AsyncMock(spec=SignatureStore)
    store.list_signatures.return_value = []
    return store


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def mail_cache(memory_cache: MemoryCache) -> MailCache:
    return MailCache(memory_cache, "user-1", folder_ttl=300, message_ttl=60)


@pytest.fixture
def recipient() -> Callable[..., Recipient]:
    def factory(email: str, name: Optional[str] = None) -> Recipient:
        return Recipient(email=email, name=name)

    return factory
