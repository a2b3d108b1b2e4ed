"""Search history view: the user's recent searches, replay, and clear-all."""

import logging
from functools import partial

from cache.query_cache import CacheKey, QueryCache
from core.exceptions import RecordStoreError
from core.sentry import capture_exception
from core.telemetry import RequestTelemetry
from search.models import SearchHistoryEntry, SearchResultSet
from search.orchestrator import SearchOrchestrator
from search.queries import delete_search_history, fetch_search_history, order_history
from search.session import SearchSession
from store.base import RecordStore

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 10


class SearchHistoryView:
    """Cached, capped, most-recent-first list of a user's searches."""

    def __init__(
        self,
        store: RecordStore,
        cache: QueryCache,
        orchestrator: SearchOrchestrator,
        limit: int = MAX_HISTORY_ENTRIES,
    ):
        self.store = store
        self.cache = cache
        self.orchestrator = orchestrator
        self.limit = limit

    def _fetcher(self, user_id: str):
        return partial(fetch_search_history, self.store, user_id, self.limit)

    def entries(self, user_id: str) -> list[SearchHistoryEntry]:
        """Cached history; empty (with a background fetch started) on first read."""
        value = self.cache.get(CacheKey.search_history(user_id), self._fetcher(user_id), [])
        return order_history(value, self.limit)

    async def load(self, user_id: str) -> list[SearchHistoryEntry]:
        """Cached history, fetching it from the store on the first load.

        If the slot was invalidated and its re-fetch is still running, waits
        for it so the caller sees the searches that caused the invalidation.
        """
        key = CacheKey.search_history(user_id)
        if self.cache.peek(key) is None:
            value = await self.cache.fetch(key, self._fetcher(user_id), fallback=[])
            return order_history(value, self.limit)

        entry = self.cache.entry(key)
        if entry.stale and entry.in_flight is not None and not entry.in_flight.done():
            await entry.in_flight
        return self.entries(user_id)

    def find(self, user_id: str, entry_id: str) -> SearchHistoryEntry | None:
        """Look up a visible history entry by id."""
        for entry in self.entries(user_id):
            if entry.id == entry_id:
                return entry
        return None

    async def replay(
        self,
        session: SearchSession,
        entry: SearchHistoryEntry,
        telemetry: RequestTelemetry | None = None,
    ) -> SearchResultSet | None:
        """Put the entry's query back in the input and search for it again."""
        session.query = entry.query
        return await self.orchestrator.execute_search(session, entry.query, telemetry)

    async def clear_all(self, user_id: str) -> None:
        """Delete the user's history and show it as empty without waiting for a re-fetch.

        The cache is emptied before the delete is issued. If the delete fails
        the empty state stays visible until the next re-fetch.
        """
        key = CacheKey.search_history(user_id)
        self.cache.register(key, self._fetcher(user_id))
        self.cache.set(key, [])

        try:
            await delete_search_history(self.store, user_id)
        except RecordStoreError as e:
            logger.warning(f"Failed to clear search history for user {user_id}: {e}")
            capture_exception(e, user_id=user_id, step="clear_history")

        # A re-fetch that resolved during the delete may have put old rows back
        if self.cache.peek(key) != []:
            self.cache.set(key, [])
