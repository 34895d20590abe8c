"""
Debounced, account-scoped message search.
"""

import asyncio
import logging
from typing import Optional

from email_suite.config import get_settings
from email_suite.core.events import SEARCH_CHANGED, EventBus
from email_suite.core.generation import RequestGeneration
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.schemas.message import EmailMessage
from email_suite.services.account_manager import AccountManager

logger = logging.getLogger(__name__)

settings = get_settings()


class SearchController:
    """
    Runs searches against the selected account.

    Every call to ``search`` or ``clear`` supersedes the previous one; only
    the latest query's results are ever applied.
    """

    def __init__(
        self,
        gateway: MailProviderGateway,
        accounts: AccountManager,
        events: Optional[EventBus] = None,
        debounce_seconds: Optional[float] = None,
        limit: Optional[int] = None,
    ):
        self.gateway = gateway
        self.accounts = accounts
        self.events = events or EventBus()
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.search_debounce_seconds
        )
        self.limit = limit or settings.search_limit

        self.query = ""
        self.results: list[EmailMessage] = []
        self.is_searching = False
        self._generation = RequestGeneration()

    @property
    def is_active(self) -> bool:
        """True while a non-empty query is in effect."""
        return bool(self.query)

    async def search(self, query: str) -> list[EmailMessage]:
        """
        Search the selected account for ``query``.

        Returns the applied results, or ``[]`` when the call was superseded
        by a newer search or a clear.
        """
        query = query.strip()
        if not query:
            self.clear()
            return []

        token = self._generation.next()
        self.query = query
        self.is_searching = True
        self.events.publish(SEARCH_CHANGED, {"query": query, "results": list(self.results)})

        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)
        if not self._generation.is_current(token):
            return []

        account = self.accounts.selected_account
        if account is None:
            self.is_searching = False
            self.results = []
            self.events.publish(SEARCH_CHANGED, {"query": query, "results": []})
            return []

        try:
            results = await self.gateway.search_messages(account.id, query, limit=self.limit)
        except Exception as e:
            if not self._generation.is_current(token):
                logger.debug(f"Ignoring failure of superseded search {query!r}: {e}")
                return []
            self.is_searching = False
            self.events.publish(SEARCH_CHANGED, {"query": query, "results": list(self.results)})
            raise

        if not self._generation.is_current(token):
            logger.debug(f"Dropping stale search results for {query!r}")
            return []

        self.results = results
        self.is_searching = False
        self.events.publish(SEARCH_CHANGED, {"query": query, "results": list(results)})
        return list(results)

    def clear(self) -> None:
        """Drop the query and results; pending responses are discarded on arrival."""
        self._generation.next()
        had_state = bool(self.query or self.results or self.is_searching)
        self.query = ""
        self.results = []
        self.is_searching = False
        if had_state:
            self.events.publish(SEARCH_CHANGED, {"query": "", "results": []})
