"""FastAPI dependency injection providers."""

import logging

from fastapi import Depends, Header, HTTPException
from posthog import Posthog

from cache.query_cache import QueryCache
from config.settings import Settings, get_settings
from core.exceptions import ConfigurationError, ServiceInitializationError
from search.history import SearchHistoryView
from search.orchestrator import SearchOrchestrator
from search.session import SearchSessionRegistry
from store.base import RecordStore
from store.postgrest import PostgrestRecordStore
from store.sqlite import SqliteRecordStore

logger = logging.getLogger(__name__)

# Module-level instances for lifecycle management
_record_store: RecordStore | None = None
_query_cache: QueryCache | None = None
_session_registry: SearchSessionRegistry | None = None
_posthog_client: Posthog | None = None


async def get_record_store(settings: Settings = Depends(get_settings)) -> RecordStore:
    """Get the record store for the configured backend.

    Raises:
        ServiceInitializationError: If the backend can't be configured or connected
    """
    global _record_store

    if _record_store is None:
        try:
            if settings.record_store_backend == "sqlite":
                db_path = settings.sqlite_db_path
                store = SqliteRecordStore(db_path=db_path)
                await store.connect()
                logger.info(f"SQLite record store connected: {db_path}")
            else:
                if not settings.record_store_url:
                    raise ConfigurationError("RECORD_STORE_URL must be set for the postgrest backend")
                store = PostgrestRecordStore(
                    settings.record_store_url,
                    api_key=settings.record_store_api_key,
                    timeout=settings.record_store_timeout,
                )
                logger.info(f"REST record store configured: {settings.record_store_url}")
            _record_store = store
        except Exception as e:
            logger.error(f"Failed to initialize record store: {e}")
            raise ServiceInitializationError(f"Record store initialization failed: {e}") from e

    return _record_store


async def close_record_store() -> None:
    """Close the record store connection."""
    global _record_store
    if _record_store:
        await _record_store.close()
        _record_store = None


def get_query_cache(settings: Settings = Depends(get_settings)) -> QueryCache:
    """Get the process-wide query cache."""
    global _query_cache
    if _query_cache is None:
        _query_cache = QueryCache(maxsize=settings.query_cache_maxsize)
        logger.info(f"Query cache created (maxsize: {settings.query_cache_maxsize})")
    return _query_cache


def get_session_registry(settings: Settings = Depends(get_settings)) -> SearchSessionRegistry:
    """Get the process-wide search session registry."""
    global _session_registry
    if _session_registry is None:
        _session_registry = SearchSessionRegistry(
            maxsize=settings.session_registry_maxsize, ttl=settings.session_ttl_seconds
        )
    return _session_registry


def get_search_orchestrator(
    store: RecordStore = Depends(get_record_store),
    cache: QueryCache = Depends(get_query_cache),
    settings: Settings = Depends(get_settings),
) -> SearchOrchestrator:
    """Build a search orchestrator over the shared store and cache."""
    return SearchOrchestrator(
        store,
        cache,
        song_limit=settings.search_song_limit,
        album_limit=settings.search_album_limit,
        discard_stale_results=settings.discard_stale_results,
    )


def get_history_view(
    store: RecordStore = Depends(get_record_store),
    cache: QueryCache = Depends(get_query_cache),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
    settings: Settings = Depends(get_settings),
) -> SearchHistoryView:
    """Build the search history view over the shared store and cache."""
    return SearchHistoryView(store, cache, orchestrator, limit=settings.search_history_limit)


def get_current_user_id(x_user_id: str | None = Header(None)) -> str:
    """Identity of the authenticated caller, as forwarded by the auth proxy."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")
    return x_user_id.strip()


def get_posthog_client(settings: Settings = Depends(get_settings)) -> Posthog | None:
    """Shared PostHog client; None when telemetry is switched off or has no API key."""
    global _posthog_client

    if not (settings.enable_telemetry and settings.posthog_api_key):
        return None

    if _posthog_client is None:
        _posthog_client = Posthog(
            project_api_key=settings.posthog_api_key,
            host=settings.posthog_host,
            super_properties={"service_version": settings.app_version},
        )
        logger.info(f"PostHog telemetry enabled ({settings.posthog_host})")

    return _posthog_client


def flush_posthog() -> None:
    if _posthog_client is not None:
        _posthog_client.flush()


def shutdown_posthog() -> None:
    """Flush and stop the PostHog client's background consumer."""
    global _posthog_client
    client, _posthog_client = _posthog_client, None
    if client is not None:
        client.shutdown()
        logger.info("PostHog client shut down")
