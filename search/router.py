"""Search API router."""

import logging
from functools import partial

from fastapi import APIRouter, Depends, HTTPException
from posthog import Posthog

from cache.query_cache import CacheKey, QueryCache
from core.dependencies import (
    get_current_user_id,
    get_history_view,
    get_posthog_client,
    get_query_cache,
    get_record_store,
    get_search_orchestrator,
    get_session_registry,
)
from core.exceptions import RecordStoreError
from core.telemetry import RequestTelemetry, get_cache_stats, init_cache_stats
from search.history import SearchHistoryView
from search.models import (
    Playlist,
    SearchHistoryResponse,
    SearchPageView,
    SearchRequest,
    SearchResultSet,
)
from search.orchestrator import SearchOrchestrator
from search.presentation import build_search_page
from search.queries import fetch_playlists
from search.session import SearchSession, SearchSessionRegistry
from store.base import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


def cached_playlists(cache: QueryCache, store: RecordStore, user_id: str) -> list[Playlist]:
    """The user's playlists from the cache; empty until the first fetch lands."""
    return cache.get(CacheKey.playlists(user_id), partial(fetch_playlists, store, user_id), [])


async def render_page(
    session: SearchSession,
    history_view: SearchHistoryView,
    cache: QueryCache,
    store: RecordStore,
) -> SearchPageView:
    history = await history_view.load(session.user_id)
    playlists = cached_playlists(cache, store, session.user_id)
    return build_search_page(session, history, playlists)


async def _run_search(search, telemetry: RequestTelemetry, posthog_client: Posthog | None):
    """Await a search coroutine, mapping failures to HTTP errors and reporting telemetry."""
    try:
        results: SearchResultSet | None = await search
    except HTTPException:
        raise
    except RecordStoreError as e:
        logger.error(f"Search failed: {e}")
        raise HTTPException(status_code=502, detail="Record store unavailable") from e
    except Exception as e:
        logger.error(f"Search failed: {e}")
        raise HTTPException(status_code=500, detail="Internal server error") from e

    if posthog_client and results is not None:
        telemetry.send_to_posthog(
            posthog_client,
            {
                "songs_count": len(results.songs),
                "albums_count": len(results.albums),
            },
        )
    return results


@router.post(
    "",
    response_model=SearchPageView,
    summary="Search songs and albums",
    description="""
    Submits a search for the current user.

    This endpoint:
    1. Ignores blank queries (clears the active results, records nothing)
    2. Records the query in the user's search history
    3. Looks up songs (by title or artist name) and albums (by title) concurrently
    4. Refreshes the user's cached search history
    5. Returns the search page with the published results
    """,
    responses={
        200: {"description": "Search completed"},
        401: {"description": "Missing user identity"},
        502: {"description": "Record store unavailable"},
        500: {"description": "Internal server error"},
    },
)
async def submit_search(
    request: SearchRequest,
    user_id: str = Depends(get_current_user_id),
    sessions: SearchSessionRegistry = Depends(get_session_registry),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
    history_view: SearchHistoryView = Depends(get_history_view),
    cache: QueryCache = Depends(get_query_cache),
    store: RecordStore = Depends(get_record_store),
    posthog_client: Posthog | None = Depends(get_posthog_client),
):
    """Run a search and return the updated page."""
    init_cache_stats()
    telemetry = RequestTelemetry(user_id=user_id)
    session = sessions.get(user_id)
    session.query = request.query

    await _run_search(
        orchestrator.execute_search(session, request.query, telemetry),
        telemetry,
        posthog_client,
    )
    logger.debug(f"Cache stats: {get_cache_stats()}")
    return await render_page(session, history_view, cache, store)


@router.get(
    "",
    response_model=SearchPageView,
    summary="Current search page",
    responses={401: {"description": "Missing user identity"}},
)
async def get_search_page(
    user_id: str = Depends(get_current_user_id),
    sessions: SearchSessionRegistry = Depends(get_session_registry),
    history_view: SearchHistoryView = Depends(get_history_view),
    cache: QueryCache = Depends(get_query_cache),
    store: RecordStore = Depends(get_record_store),
):
    """Render the search page from the session and the cache."""
    return await render_page(sessions.get(user_id), history_view, cache, store)


@router.delete(
    "",
    response_model=SearchPageView,
    summary="Clear the active search",
    responses={401: {"description": "Missing user identity"}},
)
async def clear_search(
    user_id: str = Depends(get_current_user_id),
    sessions: SearchSessionRegistry = Depends(get_session_registry),
    history_view: SearchHistoryView = Depends(get_history_view),
    cache: QueryCache = Depends(get_query_cache),
    store: RecordStore = Depends(get_record_store),
):
    """Empty the search input and go back to the history view."""
    session = sessions.get(user_id)
    session.clear()
    return await render_page(session, history_view, cache, store)


@router.get(
    "/history",
    response_model=SearchHistoryResponse,
    summary="Recent searches",
    responses={401: {"description": "Missing user identity"}},
)
async def get_history(
    user_id: str = Depends(get_current_user_id),
    history_view: SearchHistoryView = Depends(get_history_view),
):
    """Return the user's most recent searches, newest first."""
    entries = await history_view.load(user_id)
    return SearchHistoryResponse(entries=entries, total=len(entries))


@router.post(
    "/history/{entry_id}/replay",
    response_model=SearchPageView,
    summary="Repeat a recent search",
    responses={
        200: {"description": "Search completed"},
        401: {"description": "Missing user identity"},
        404: {"description": "History entry not found"},
        502: {"description": "Record store unavailable"},
    },
)
async def replay_history_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    sessions: SearchSessionRegistry = Depends(get_session_registry),
    history_view: SearchHistoryView = Depends(get_history_view),
    cache: QueryCache = Depends(get_query_cache),
    store: RecordStore = Depends(get_record_store),
    posthog_client: Posthog | None = Depends(get_posthog_client),
):
    """Put a history entry's query back in the input and search for it."""
    await history_view.load(user_id)
    entry = history_view.find(user_id, entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="History entry not found")

    init_cache_stats()
    telemetry = RequestTelemetry(user_id=user_id)
    session = sessions.get(user_id)
    await _run_search(history_view.replay(session, entry, telemetry), telemetry, posthog_client)
    return await render_page(session, history_view, cache, store)


@router.delete(
    "/history",
    response_model=SearchPageView,
    summary="Clear search history",
    responses={401: {"description": "Missing user identity"}},
)
async def clear_history(
    user_id: str = Depends(get_current_user_id),
    sessions: SearchSessionRegistry = Depends(get_session_registry),
    history_view: SearchHistoryView = Depends(get_history_view),
    cache: QueryCache = Depends(get_query_cache),
    store: RecordStore = Depends(get_record_store),
):
    """Delete the user's search history."""
    await history_view.clear_all(user_id)
    return await render_page(sessions.get(user_id), history_view, cache, store)
