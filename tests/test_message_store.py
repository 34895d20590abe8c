"""Tests for the message list, open message and optimistic mutations."""

import asyncio

import pytest

from email_suite.core.events import MESSAGE_OPENED
from email_suite.core.exceptions import GatewayError, UserInputError
from email_suite.schemas.message import MessageFilter, MessagePage
from email_suite.services.folder_sync import FolderSync
from email_suite.services.message_store import MessageStore


@pytest.fixture
async def folder_sync(gateway, events, make_folder) -> FolderSync:
    sync = FolderSync(gateway, events=events)
    gateway.list_folders.return_value = [
        make_folder("inbox", "inbox", unreadCount=2),
        make_folder("archive", "archive"),
    ]
    await sync.load_folders("acc-1")
    return sync


@pytest.fixture
def store(gateway, mail_cache, events, folder_sync) -> MessageStore:
    return MessageStore(gateway, cache=mail_cache, events=events, folder_sync=folder_sync, page_size=2)


@pytest.fixture
async def opened(store, gateway, make_message) -> MessageStore:
    gateway.list_messages.return_value = MessagePage(
        messages=[make_message("m1"), make_message("m2", isRead=True)],
    )
    await store.open_folder("acc-1", "inbox")
    return store


# =============================================================================
# Pages
# =============================================================================

class TestPages:
    """Tests for first page loads, pagination and filters."""

    async def test_open_folder_loads_first_page(self, store, gateway, make_message) -> None:
        gateway.list_messages.return_value = MessagePage(
            messages=[make_message("m1"), make_message("m2")],
            next_cursor="c2",
            has_more=True,
        )

        messages = await store.open_folder("acc-1", "inbox")

        assert [m.id for m in messages] == ["m1", "m2"]
        assert store.cursor == "c2"
        assert store.has_more is True
        assert store.is_loading is False
        gateway.list_messages.assert_awaited_once_with(
            "acc-1", "inbox", message_filter=MessageFilter.ALL, limit=2, cursor=None,
        )

    async def test_load_more_appends_and_stops_at_end(self, store, gateway, make_message) -> None:
        gateway.list_messages.side_effect = [
            MessagePage(messages=[make_message("m1"), make_message("m2")], next_cursor="c2", has_more=True),
            MessagePage(messages=[make_message("m2"), make_message("m3")], next_cursor=None, has_more=False),
        ]
        await store.open_folder("acc-1", "inbox")

        appended = await store.load_more()

        assert [m.id for m in appended] == ["m3"]
        assert [m.id for m in store.messages] == ["m1", "m2", "m3"]
        assert store.has_more is False
        assert gateway.list_messages.await_args.kwargs["cursor"] == "c2"

        assert await store.load_more() == []
        assert gateway.list_messages.await_count == 2

    async def test_folder_switch_drops_stale_page(self, store, gateway, make_message) -> None:
        release = asyncio.Event()

        async def list_messages(account_id, folder_id, **kwargs):
            if folder_id == "inbox":
                await release.wait()
                return MessagePage(messages=[make_message("from-inbox")])
            return MessagePage(messages=[make_message("from-archive")])

        gateway.list_messages.side_effect = list_messages

        slow = asyncio.create_task(store.open_folder("acc-1", "inbox"))
        await asyncio.sleep(0)
        await store.open_folder("acc-1", "archive")
        release.set()
        await slow

        assert store.folder_id == "archive"
        assert [m.id for m in store.messages] == ["from-archive"]
        assert store.is_loading is False

    async def test_set_filter_resets_pagination(self, store, gateway, make_message) -> None:
        gateway.list_messages.return_value = MessagePage(
            messages=[make_message("m1")], next_cursor="c2", has_more=True,
        )
        await store.open_folder("acc-1", "inbox")
        gateway.list_messages.return_value = MessagePage(messages=[make_message("u1")])

        await store.set_filter(MessageFilter.UNREAD)

        assert store.filter == MessageFilter.UNREAD
        assert [m.id for m in store.messages] == ["u1"]
        assert store.cursor is None
        assert gateway.list_messages.await_args.kwargs["message_filter"] == MessageFilter.UNREAD

    async def test_first_page_is_cached(self, store, gateway, make_message) -> None:
        gateway.list_messages.return_value = MessagePage(messages=[make_message("m1")])

        await store.open_folder("acc-1", "inbox")
        await store.open_folder("acc-1", "inbox")
        assert gateway.list_messages.await_count == 1

        await store.refresh()
        assert gateway.list_messages.await_count == 2

    async def test_no_folder_gives_empty_list(self, store, gateway) -> None:
        assert await store.open_folder("acc-1", None) == []
        gateway.list_messages.assert_not_awaited()


# =============================================================================
# Open message
# =============================================================================

class TestOpenMessage:
    """Tests for the lazy full-message fetch."""

    async def test_open_marks_read_and_decrements_unread(
        self, opened, gateway, folder_sync, make_message, collector,
    ) -> None:
        gateway.get_message.return_value = make_message("m1", bodyHtml="<p>full</p>")

        message = await opened.open_message("m1")

        assert message.is_read is True
        assert message.body_html == "<p>full</p>"
        assert opened.messages[0].is_read is True
        assert folder_sync.get("inbox").unread_count == 1
        gateway.mark_as_read.assert_awaited_once_with("acc-1", "m1", True)
        assert collector.payloads(MESSAGE_OPENED)[0].id == "m1"

    async def test_mark_read_failure_does_not_fail_open(
        self, opened, gateway, folder_sync, make_message,
    ) -> None:
        gateway.get_message.return_value = make_message("m1")
        gateway.mark_as_read.side_effect = GatewayError("flaky")

        message = await opened.open_message("m1")

        assert message.id == "m1"
        assert message.is_read is False
        assert folder_sync.get("inbox").unread_count == 2

    async def test_stale_open_is_dropped(self, opened, gateway, make_message) -> None:
        release = asyncio.Event()

        async def get_message(account_id, message_id):
            if message_id == "m1":
                await release.wait()
            return make_message(message_id, isRead=True)

        gateway.get_message.side_effect = get_message

        slow = asyncio.create_task(opened.open_message("m1"))
        await asyncio.sleep(0)
        await opened.open_message("m2")
        release.set()

        assert await slow is None
        assert opened.selected_message.id == "m2"

    async def test_switching_folder_closes_message(self, opened, gateway, make_message) -> None:
        gateway.get_message.return_value = make_message("m2", isRead=True)
        await opened.open_message("m2")

        await opened.open_folder("acc-1", "archive")

        assert opened.selected_message is None

    async def test_refresh_keeps_open_message(self, opened, gateway, make_message) -> None:
        gateway.get_message.return_value = make_message("m2", isRead=True)
        await opened.open_message("m2")

        await opened.refresh()

        assert opened.selected_message.id == "m2"

    async def test_open_without_account(self, store) -> None:
        with pytest.raises(UserInputError):
            await store.open_message("m1")


# =============================================================================
# Optimistic mutations
# =============================================================================

class TestMutations:
    """Tests for read flags, moves and deletes with rollback."""

    async def test_mark_unread_increments_count(self, opened, gateway, folder_sync) -> None:
        await opened.mark_unread("m2")

        assert opened.messages[1].is_read is False
        assert folder_sync.get("inbox").unread_count == 3
        gateway.mark_as_read.assert_awaited_once_with("acc-1", "m2", False)

    async def test_mark_read_rolls_back(self, opened, gateway, folder_sync) -> None:
        gateway.mark_as_read.side_effect = GatewayError("nope")

        with pytest.raises(GatewayError):
            await opened.mark_read("m1")

        assert opened.messages[0].is_read is False
        assert folder_sync.get("inbox").unread_count == 2

    async def test_mark_read_noop_when_already_read(self, opened, gateway) -> None:
        await opened.mark_read("m2")
        gateway.mark_as_read.assert_not_awaited()

    async def test_move_updates_list_and_counts(self, opened, gateway, folder_sync) -> None:
        await opened.move_message("m1", "archive")

        assert [m.id for m in opened.messages] == ["m2"]
        assert folder_sync.get("inbox").unread_count == 1
        assert folder_sync.get("archive").unread_count == 1
        gateway.move_message.assert_awaited_once_with("acc-1", "m1", "archive", source_folder_id="inbox")

    async def test_delete_rollback_restores_position(self, opened, gateway, folder_sync) -> None:
        gateway.delete_message.side_effect = GatewayError("nope")

        with pytest.raises(GatewayError):
            await opened.delete_message("m1")

        assert [m.id for m in opened.messages] == ["m1", "m2"]
        assert folder_sync.get("inbox").unread_count == 2

    async def test_delete_open_message_closes_it(self, opened, gateway, make_message) -> None:
        gateway.get_message.return_value = make_message("m2", isRead=True)
        await opened.open_message("m2")

        await opened.delete_message("m2")

        assert opened.selected_message is None
        assert [m.id for m in opened.messages] == ["m1"]

    async def test_mutation_invalidates_cached_pages(self, opened, gateway, mail_cache) -> None:
        assert await mail_cache.get_page("acc-1", "inbox", MessageFilter.ALL, None) is not None

        await opened.delete_message("m2")

        assert await mail_cache.get_page("acc-1", "inbox", MessageFilter.ALL, None) is None

    async def test_unknown_message(self, opened) -> None:
        with pytest.raises(UserInputError):
            await opened.mark_read("missing")
