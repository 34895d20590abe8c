"""
Periodic background sync.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from email_suite.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


class SyncPoller:
    """Runs ``sync`` every ``interval_seconds`` until stopped; 0 disables it."""

    def __init__(
        self,
        sync: Callable[[], Awaitable[None]],
        interval_seconds: Optional[float] = None,
    ):
        self.sync = sync
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.sync_interval_seconds
        )
        self.runs = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.interval_seconds <= 0 or self.is_running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Background sync every {self.interval_seconds}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.runs += 1
            try:
                await self.sync()
            except Exception:
                self.failures += 1
                logger.exception("Background sync failed")
