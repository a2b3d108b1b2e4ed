"""Per-user search input state."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from cachetools import TTLCache  # type: ignore[import-untyped]

from search.models import SearchResultSet

logger = logging.getLogger(__name__)

MAX_SESSIONS = 10_000
SESSION_TTL_SECONDS = 60 * 60


@dataclass
class SearchSession:
    """What one user currently has typed, found, and is waiting on.

    ``results`` is None when no search is active; the history view is shown
    instead.
    """

    user_id: str
    query: str = ""
    results: SearchResultSet | None = None
    is_searching: bool = False
    issued: int = 0

    def next_sequence(self) -> int:
        """Number the next search issued from this session."""
        self.issued += 1
        return self.issued

    def clear(self) -> None:
        """Reset the input and drop the active results."""
        self.query = ""
        self.results = None


class SearchSessionRegistry:
    """Process-wide map of user id to search session.

    Holds at most ``maxsize`` sessions. A session idle for ``ttl`` seconds,
    or the least recently used one when the registry is full, is dropped
    and the user starts over with an empty session.
    """

    def __init__(
        self,
        maxsize: int = MAX_SESSIONS,
        ttl: float = SESSION_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._sessions: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)

    def get(self, user_id: str) -> SearchSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = SearchSession(user_id=user_id)
            logger.debug(f"New search session for user {user_id} ({len(self._sessions)} active)")
        # Re-inserting restarts the idle timer
        self._sessions[user_id] = session
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()
