"""Search orchestrator: the submit-a-query workflow.

execute_search() runs the whole pipeline for one submission:
guard -> history append -> song/album fan-out -> history cache refresh -> publish.

Concurrent searches from the same session are not serialized or cancelled.
Each one writes the session's busy flag and result slot when it finishes,
so the last search to resolve is the one the user sees. With
``discard_stale_results`` enabled, results of a search that has since been
superseded are returned to the caller but not published.
"""

import asyncio
import logging

from cache.query_cache import CacheKey, QueryCache
from core.sentry import capture_exception
from core.telemetry import RequestTelemetry
from search.models import Album, SearchQuery, SearchResultSet, Song
from search.queries import insert_history_entry, search_albums, search_songs
from search.session import SearchSession
from store.base import RecordStore

logger = logging.getLogger(__name__)

MAX_SONG_RESULTS = 20
MAX_ALBUM_RESULTS = 10


class SearchOrchestrator:
    """Runs searches against the record store and publishes them to sessions."""

    def __init__(
        self,
        store: RecordStore,
        cache: QueryCache,
        song_limit: int = MAX_SONG_RESULTS,
        album_limit: int = MAX_ALBUM_RESULTS,
        discard_stale_results: bool = False,
    ):
        self.store = store
        self.cache = cache
        self.song_limit = song_limit
        self.album_limit = album_limit
        self.discard_stale_results = discard_stale_results

    async def execute_search(
        self,
        session: SearchSession,
        raw_query: str | None,
        telemetry: RequestTelemetry | None = None,
    ) -> SearchResultSet | None:
        """Run one search for the session's user.

        Blank input clears the active results and touches nothing else.
        Otherwise the trimmed query is recorded to history (best-effort), songs
        and albums are looked up concurrently, the user's history cache is
        refreshed, and the merged results are published to the session.

        Returns:
            The merged result set, or None for blank input

        Raises:
            RecordStoreError: If either lookup fails. Nothing is published and
                the busy flag is still cleared.
        """
        query = SearchQuery.from_raw(raw_query, session.user_id)
        if query is None:
            session.results = None
            return None

        telemetry = telemetry or RequestTelemetry(user_id=session.user_id)
        sequence = session.next_sequence()
        session.is_searching = True
        logger.info(f"Searching for '{query.text}' (user {query.user_id}, #{sequence})")

        try:
            # Scheduled first so the insert is issued before the lookups,
            # but the lookups don't wait for it
            history_task = asyncio.create_task(self._append_history(query, telemetry))
            try:
                with telemetry.track_step("fan_out"):
                    songs, albums = await self._fan_out(query.text, telemetry)
            finally:
                await history_task
                with telemetry.track_step("history_refresh"):
                    self.cache.invalidate(CacheKey.search_history(query.user_id))

            results = SearchResultSet(songs=songs, albums=albums)
            logger.info(
                f"Search '{query.text}' found {len(songs)} songs, {len(albums)} albums"
            )

            if self.discard_stale_results and sequence != session.issued:
                logger.info(
                    f"Discarding results of search #{sequence}; #{session.issued} is newer"
                )
                return results

            session.results = results
            return results
        finally:
            session.is_searching = False

    async def _append_history(self, query: SearchQuery, telemetry: RequestTelemetry) -> str | None:
        """Record the search. Failures are logged and reported, never raised."""
        try:
            with telemetry.track_step("history_append"):
                telemetry.count_store_calls()
                return await insert_history_entry(self.store, query)
        except Exception as e:
            logger.warning(f"Failed to record search history for '{query.text}': {e}")
            capture_exception(e, user_id=query.user_id, step="history_append", query=query.text)
            return None

    async def _fan_out(
        self, text: str, telemetry: RequestTelemetry
    ) -> tuple[list[Song], list[Album]]:
        """Look up songs and albums concurrently, letting both settle before returning."""
        telemetry.count_store_calls(2)
        songs, albums = await asyncio.gather(
            search_songs(self.store, text, self.song_limit),
            search_albums(self.store, text, self.album_limit),
            return_exceptions=True,
        )
        if isinstance(songs, BaseException):
            logger.error(f"Song lookup for '{text}' failed: {songs}")
            raise songs
        if isinstance(albums, BaseException):
            logger.error(f"Album lookup for '{text}' failed: {albums}")
            raise albums
        return songs, albums
