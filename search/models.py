"""Models for the search API contract and the records it reads."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Profile(BaseModel):
    """Public projection of a user/artist profile."""

    model_config = ConfigDict(extra="allow")

    id: str
    display_name: str | None = None
    avatar_url: str | None = None


class Album(BaseModel):
    """An album with its embedded artist profile."""

    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    artist_id: str | None = None
    cover_url: str | None = None
    artist: Profile | None = None


class Song(BaseModel):
    """A song with its embedded artist profile and parent album."""

    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    artist_id: str | None = None
    album_id: str | None = None
    cover_url: str | None = None
    is_explicit: bool = False
    play_count: int = 0
    artist: Profile | None = None
    album: Album | None = None


class Playlist(BaseModel):
    """A playlist owned by the current user."""

    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str
    name: str | None = None


class SearchQuery(BaseModel):
    """A submitted, non-empty search."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    user_id: str
    issued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_raw(cls, raw_query: str | None, user_id: str) -> "SearchQuery | None":
        """Build a query from user input, or None when the input is blank."""
        text = (raw_query or "").strip()
        if not text:
            return None
        return cls(text=text, user_id=user_id)


class SearchHistoryEntry(BaseModel):
    """A persisted search_history row."""

    id: str
    user_id: str
    query: str
    searched_at: datetime


class SearchResultSet(BaseModel):
    """Merged results of one search."""

    songs: list[Song] = []
    albums: list[Album] = []

    @property
    def is_empty(self) -> bool:
        return not self.songs and not self.albums


class SearchRequest(BaseModel):
    """Request body for POST /search."""

    query: str = ""


class SearchHistoryResponse(BaseModel):
    """Response containing the visible search history."""

    entries: list[SearchHistoryEntry]
    total: int


PageMode = Literal["results", "no_results", "history", "empty"]


class SearchPageView(BaseModel):
    """Everything needed to render the search page for one user."""

    mode: PageMode
    query: str = ""
    is_searching: bool = False
    submit_label: str = "Search"
    submit_disabled: bool = False
    can_clear_history: bool = False
    message: str | None = None
    results: SearchResultSet | None = None
    history: list[SearchHistoryEntry] = []
    playlists: list[Playlist] = []
