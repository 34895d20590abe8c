"""
Session cache for folder lists and message pages.

The cache is never authoritative: every read can be bypassed with
``force=True`` and every mutation invalidates the affected account.
"""

import fnmatch
import json
import logging
import time
from typing import Any, Optional

import redis.asyncio as redis

from email_suite.config import Settings, get_settings
from email_suite.schemas.folder import EmailFolder
from email_suite.schemas.message import MessageFilter, MessagePage

logger = logging.getLogger(__name__)


class CacheBackend:
    """Async JSON key/value store with optional TTL."""

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get_json(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError


class MemoryCache(CacheBackend):
    """In-process cache scoped to one session."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[Optional[float], str]] = {}

    async def get_json(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(value)

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._entries[key] = (expires_at, json.dumps(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache(CacheBackend):
    """Redis-backed cache for dashboards that share a cache service."""

    def __init__(self, url: str):
        self.url = url
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def close(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def get_json(self, key: str) -> Optional[Any]:
        value = await self.client.get(key)
        if value:
            return json.loads(value)
        return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl:
            await self.client.setex(key, ttl, json.dumps(value))
        else:
            await self.client.set(key, json.dumps(value))

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern."""
        keys = []
        async for key in self.client.scan_iter(match=pattern):
            keys.append(key)
        if keys:
            return await self.client.delete(*keys)
        return 0


def create_cache_backend(settings: Optional[Settings] = None) -> CacheBackend:
    settings = settings or get_settings()
    if settings.cache_backend == "redis":
        return RedisCache(settings.redis_url)
    return MemoryCache()


class MailCache:
    """
    Typed views over a cache backend.

    Key structure:
    - mail:{user_id}:{account_id}:folders                                  - Folder list
    - mail:{user_id}:{account_id}:messages:{folder_id}:{filter}:{cursor}   - One message page
    """

    def __init__(
        self,
        backend: CacheBackend,
        user_id: str,
        folder_ttl: Optional[int] = None,
        message_ttl: Optional[int] = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.user_id = user_id
        self.folder_ttl = folder_ttl if folder_ttl is not None else settings.folder_cache_ttl
        self.message_ttl = message_ttl if message_ttl is not None else settings.message_cache_ttl

    # ============== Keys ==============

    def folders_key(self, account_id: str) -> str:
        return f"mail:{self.user_id}:{account_id}:folders"

    def page_key(
        self,
        account_id: str,
        folder_id: str,
        message_filter: MessageFilter,
        cursor: Optional[str],
    ) -> str:
        return (
            f"mail:{self.user_id}:{account_id}:messages:"
            f"{folder_id}:{message_filter.value}:{cursor or 'first'}"
        )

    # ============== Folders ==============

    async def get_folders(self, account_id: str) -> Optional[list[EmailFolder]]:
        data = await self.backend.get_json(self.folders_key(account_id))
        if data is None:
            return None
        return [EmailFolder.model_validate(item) for item in data]

    async def set_folders(self, account_id: str, folders: list[EmailFolder]) -> None:
        await self.backend.set_json(
            self.folders_key(account_id),
            [f.model_dump(mode="json", by_alias=True) for f in folders],
            self.folder_ttl,
        )

    # ============== Message pages ==============

    async def get_page(
        self,
        account_id: str,
        folder_id: str,
        message_filter: MessageFilter,
        cursor: Optional[str],
    ) -> Optional[MessagePage]:
        data = await self.backend.get_json(
            self.page_key(account_id, folder_id, message_filter, cursor)
        )
        if data is None:
            return None
        return MessagePage.model_validate(data)

    async def set_page(
        self,
        account_id: str,
        folder_id: str,
        message_filter: MessageFilter,
        cursor: Optional[str],
        page: MessagePage,
    ) -> None:
        await self.backend.set_json(
            self.page_key(account_id, folder_id, message_filter, cursor),
            page.model_dump(mode="json", by_alias=True),
            self.message_ttl,
        )

    # ============== Invalidation ==============

    async def invalidate_messages(self, account_id: str) -> int:
        removed = await self.backend.delete_pattern(f"mail:{self.user_id}:{account_id}:messages:*")
        logger.debug(f"Invalidated {removed} cached message pages for account {account_id}")
        return removed

    async def invalidate_folders(self, account_id: str) -> None:
        await self.backend.delete(self.folders_key(account_id))

    async def invalidate_account(self, account_id: str) -> None:
        await self.invalidate_folders(account_id)
        await self.invalidate_messages(account_id)
