"""Record store reads and writes used by the search workflow."""

import logging

from search.models import Album, Playlist, SearchHistoryEntry, SearchQuery, Song
from store.base import (
    ALBUMS,
    PLAYLISTS,
    PROFILES,
    SEARCH_HISTORY,
    SONGS,
    Embed,
    Order,
    RecordStore,
    any_of,
    eq,
    icontains,
)

logger = logging.getLogger(__name__)

SONG_EMBEDS = (
    Embed("artist", PROFILES, "artist_id"),
    Embed("album", ALBUMS, "album_id"),
)
ALBUM_EMBEDS = (Embed("artist", PROFILES, "artist_id"),)


def order_history(entries: list[SearchHistoryEntry], limit: int) -> list[SearchHistoryEntry]:
    """Most recent first, capped to ``limit``."""
    return sorted(entries, key=lambda e: e.searched_at, reverse=True)[:limit]


async def search_songs(store: RecordStore, text: str, limit: int) -> list[Song]:
    """Songs whose title or artist display name contains ``text``."""
    rows = await store.select(
        SONGS,
        filters=(any_of(icontains("title", text), icontains("artist.display_name", text)),),
        embed=SONG_EMBEDS,
        limit=limit,
    )
    return [Song.model_validate(row) for row in rows[:limit]]


async def search_albums(store: RecordStore, text: str, limit: int) -> list[Album]:
    """Albums whose title contains ``text``."""
    rows = await store.select(
        ALBUMS,
        filters=(icontains("title", text),),
        embed=ALBUM_EMBEDS,
        limit=limit,
    )
    return [Album.model_validate(row) for row in rows[:limit]]


async def insert_history_entry(store: RecordStore, query: SearchQuery) -> str:
    """Append one search_history row for ``query``."""
    return await store.insert(
        SEARCH_HISTORY,
        {
            "user_id": query.user_id,
            "query": query.text,
            "searched_at": query.issued_at.isoformat(),
        },
    )


async def fetch_search_history(
    store: RecordStore, user_id: str, limit: int
) -> list[SearchHistoryEntry]:
    """The user's most recent searches."""
    rows = await store.select(
        SEARCH_HISTORY,
        filters=(eq("user_id", user_id),),
        order=Order("searched_at", descending=True),
        limit=limit,
    )
    return order_history([SearchHistoryEntry.model_validate(row) for row in rows], limit)


async def delete_search_history(store: RecordStore, user_id: str) -> int:
    """Remove every search_history row for the user."""
    deleted = await store.delete_where(SEARCH_HISTORY, (eq("user_id", user_id),))
    logger.info(f"Deleted {deleted} search history entries for user {user_id}")
    return deleted


async def fetch_playlists(store: RecordStore, user_id: str) -> list[Playlist]:
    """Playlists owned by the user."""
    rows = await store.select(PLAYLISTS, filters=(eq("user_id", user_id),))
    return [Playlist.model_validate(row) for row in rows]
