"""
In-process event bus that UI layers subscribe to for state changes.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, Callable, Optional

logger = logging.getLogger(__name__)


# ============== Event names ==============

ACCOUNTS_CHANGED = "accounts.changed"
ACCOUNT_SELECTED = "account.selected"
FOLDERS_CHANGED = "folders.changed"
FOLDER_SELECTED = "folder.selected"
MESSAGES_CHANGED = "messages.changed"
MESSAGE_OPENED = "message.opened"
SEARCH_CHANGED = "search.changed"
COMPOSE_CHANGED = "compose.changed"
UPLOADS_CHANGED = "uploads.changed"
SIGNATURES_CHANGED = "signatures.changed"
SIGNATURE_IMAGES_CHANGED = "signature_images.changed"

Handler = Callable[[str, Any], None]


class EventBus:
    """
    Publish/subscribe hub.

    Handlers are plain callables run synchronously by ``publish``; ``stream``
    yields ``(event, payload)`` tuples for UI loops that prefer iteration.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._queues: set[asyncio.Queue] = set()

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event`` ("*" for all). Returns an unsubscribe callable."""
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def publish(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers[event]) + list(self._handlers["*"]):
            try:
                handler(event, payload)
            except Exception:
                logger.exception(f"Event handler failed for {event}")

        for q in list(self._queues):
            if not q.full():
                q.put_nowait((event, payload))

    async def stream(self, maxsize: int = 0) -> AsyncIterator[tuple[str, Any]]:
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.add(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._queues.discard(q)

    def subscriber_count(self, event: Optional[str] = None) -> int:
        if event is None:
            return sum(len(h) for h in self._handlers.values()) + len(self._queues)
        return len(self._handlers[event])
