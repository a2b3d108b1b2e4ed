"""Integration test fixtures.

Provides a real SqliteRecordStore backed by in-memory SQLite, seeded with a
small catalog of artists, albums and songs.
"""

import pytest
import pytest_asyncio

from cache.query_cache import QueryCache
from config.settings import Settings
from search.session import SearchSessionRegistry
from store.sqlite import SqliteRecordStore

# ---------------------------------------------------------------------------
# Seed data -- representative catalog
# ---------------------------------------------------------------------------

SEED_PROFILES = [
    ("p-queen", "Queen", 1),
    ("p-lovers", "The Lovers", 1),
    ("p-radiohead", "Radiohead", 1),
    ("p-listener", "Listener", 0),
]

SEED_ALBUMS = [
    ("al-opera", "A Night at the Opera", "p-queen"),
    ("al-love", "Love Songs", "p-lovers"),
    ("al-ok", "OK Computer", "p-radiohead"),
]

SEED_SONGS = [
    ("s-1", "Love of My Life", "p-queen", "al-opera", 0, 120),
    ("s-2", "Bohemian Rhapsody", "p-queen", "al-opera", 0, 900),
    ("s-3", "Endless Summer", "p-lovers", "al-love", 1, 40),
    ("s-4", "Paranoid Android", "p-radiohead", "al-ok", 0, 300),
    ("s-5", "Karma Police", "p-radiohead", "al-ok", 0, 250),
    ("s-6", "100%_Pure", "p-radiohead", None, 0, 5),
]

SEED_PLAYLISTS = [
    ("pl-1", "user-1", "Favorites"),
    ("pl-2", "user-2", "Not Mine"),
]


async def _seed_data(store: SqliteRecordStore):
    """Insert seed catalog rows."""
    conn = store._conn
    await conn.executemany(
        "INSERT INTO profiles (id, display_name, is_artist) VALUES (?, ?, ?)", SEED_PROFILES
    )
    await conn.executemany("INSERT INTO albums (id, title, artist_id) VALUES (?, ?, ?)", SEED_ALBUMS)
    await conn.executemany(
        "INSERT INTO songs (id, title, artist_id, album_id, is_explicit, play_count) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        SEED_SONGS,
    )
    await conn.executemany(
        "INSERT INTO playlists (id, user_id, name) VALUES (?, ?, ?)", SEED_PLAYLISTS
    )
    await conn.commit()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def record_store():
    """Real SqliteRecordStore backed by in-memory SQLite with seed data."""
    store = SqliteRecordStore(":memory:")
    await store.connect()
    await _seed_data(store)

    yield store

    await store.close()


@pytest.fixture
def test_settings():
    """Settings with no real keys, telemetry disabled."""
    return Settings(
        _env_file=None,
        record_store_backend="sqlite",
        record_store_url=None,
        sentry_dsn=None,
        posthog_api_key=None,
        enable_telemetry=False,
        sqlite_db_path=":memory:",
    )


@pytest_asyncio.fixture
async def app_client(record_store, test_settings):
    """httpx AsyncClient with a real SQLite record store and mocked PostHog."""
    from httpx import ASGITransport, AsyncClient

    from config.settings import get_settings
    from core.dependencies import (
        get_posthog_client,
        get_query_cache,
        get_record_store,
        get_session_registry,
    )
    from main import app

    cache = QueryCache()
    registry = SearchSessionRegistry()
    app.dependency_overrides[get_record_store] = lambda: record_store
    app.dependency_overrides[get_query_cache] = lambda: cache
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.dependency_overrides[get_posthog_client] = lambda: None
    app.dependency_overrides[get_settings] = lambda: test_settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    await cache.wait_for_pending()
    app.dependency_overrides.clear()
