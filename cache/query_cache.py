"""Process-wide query cache with fetcher registration and invalidation.

Each key maps to the last fetched value, the fetcher that produced it, and
the observers interested in it. Reads never block on the network: a miss
returns the caller's fallback and fills the slot in the background.
Concurrent fetches for the same key are not ordered; whichever resolves
last owns the slot.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from cachetools import LRUCache  # type: ignore[import-untyped]

from core.telemetry import record_cache_hit, record_cache_invalidation, record_cache_miss

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Subscriber = Callable[[Any], None]


class ResourceKind(StrEnum):
    """Kinds of per-user resources held in the query cache."""

    SEARCH_HISTORY = "search-history"
    PLAYLISTS = "playlists"


@dataclass(frozen=True)
class CacheKey:
    """Typed cache key: resource kind scoped to one user."""

    kind: ResourceKind
    user_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}-{self.user_id}"

    @classmethod
    def search_history(cls, user_id: str) -> "CacheKey":
        return cls(ResourceKind.SEARCH_HISTORY, user_id)

    @classmethod
    def playlists(cls, user_id: str) -> "CacheKey":
        return cls(ResourceKind.PLAYLISTS, user_id)


@dataclass
class CacheEntry:
    """One cache slot."""

    key: str
    value: Any = None
    has_value: bool = False
    stale: bool = False
    last_fetched_at: datetime | None = None
    fetcher: Fetcher | None = None
    in_flight: asyncio.Task | None = None
    subscribers: list[Subscriber] = field(default_factory=list)


class QueryCache:
    """Keyed cache of remote reads shared by every component of the process."""

    def __init__(self, maxsize: int = 4096):
        self._entries: LRUCache = LRUCache(maxsize=maxsize)
        self._pending: set[asyncio.Task] = set()

    def _entry(self, key: CacheKey | str) -> CacheEntry:
        name = str(key)
        entry = self._entries.get(name)
        if entry is None:
            entry = CacheEntry(key=name)
            self._entries[name] = entry
        return entry

    def peek(self, key: CacheKey | str, default: Any = None) -> Any:
        """Return the cached value without registering a fetcher or fetching."""
        entry = self._entries.get(str(key))
        if entry is None or not entry.has_value:
            return default
        return entry.value

    def entry(self, key: CacheKey | str) -> CacheEntry | None:
        """Return the raw cache slot, if one exists."""
        return self._entries.get(str(key))

    def get(self, key: CacheKey | str, fetcher: Fetcher, fallback: Any = None) -> Any:
        """Return the cached value, or ``fallback`` while a background fetch fills the slot.

        ``fetcher`` becomes the key's registered fetcher for later invalidations.
        """
        entry = self._entry(key)
        entry.fetcher = fetcher

        if entry.has_value:
            record_cache_hit()
            return entry.value

        record_cache_miss()
        if entry.in_flight is None or entry.in_flight.done():
            self._schedule(entry)
        return fallback

    async def fetch(self, key: CacheKey | str, fetcher: Fetcher, fallback: Any = None) -> Any:
        """Fetch now, store the result, and return it.

        On failure the previous value (or ``fallback`` if there is none) is returned.
        """
        entry = self._entry(key)
        entry.fetcher = fetcher
        record_cache_miss()
        return await self._refresh(entry.key, fetcher, fallback)

    def register(self, key: CacheKey | str, fetcher: Fetcher) -> None:
        """Make ``fetcher`` the key's fetcher without reading or fetching."""
        self._entry(key).fetcher = fetcher

    def invalidate(self, key: CacheKey | str) -> asyncio.Task | None:
        """Mark the slot stale and re-fetch it with its last registered fetcher.

        Returns:
            The background re-fetch task, or None if no fetcher was ever registered
        """
        entry = self._entries.get(str(key))
        if entry is None or entry.fetcher is None:
            logger.debug(f"Invalidate of '{key}' ignored: no registered fetcher")
            return None

        entry.stale = True
        record_cache_invalidation()
        return self._schedule(entry)

    def set(self, key: CacheKey | str, value: Any) -> None:
        """Overwrite the slot directly, without fetching."""
        self._store(str(key), value)

    def subscribe(self, key: CacheKey | str, callback: Subscriber) -> Callable[[], None]:
        """Register an observer notified with each new value for ``key``.

        Returns:
            A callable that removes the observer
        """
        entry = self._entry(key)
        entry.subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in entry.subscribers:
                entry.subscribers.remove(callback)

        return unsubscribe

    async def wait_for_pending(self) -> None:
        """Wait until every background fetch has settled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        """Drop every slot. Background fetches still in flight will repopulate theirs."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _schedule(self, entry: CacheEntry) -> asyncio.Task:
        assert entry.fetcher is not None
        task = asyncio.get_running_loop().create_task(self._refresh(entry.key, entry.fetcher))
        entry.in_flight = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _refresh(self, key: str, fetcher: Fetcher, fallback: Any = None) -> Any:
        try:
            value = await fetcher()
        except Exception as e:
            logger.warning(f"Fetch for '{key}' failed, keeping previous value: {e}")
            entry = self._entries.get(key)
            if entry is not None and entry.has_value:
                return entry.value
            return fallback

        self._store(key, value)
        return value

    def _store(self, key: str, value: Any) -> None:
        entry = self._entry(key)
        entry.value = value
        entry.has_value = True
        entry.stale = False
        entry.last_fetched_at = datetime.now(UTC)

        for callback in list(entry.subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception(f"Cache subscriber for '{key}' failed")
