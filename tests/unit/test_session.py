"""Unit tests for search/session.py."""

from search.models import SearchResultSet, Song
from search.session import SearchSession, SearchSessionRegistry
from tests.factories import song_row


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestSearchSession:
    def test_clear_resets_query_and_results(self):
        results = SearchResultSet(songs=[Song.model_validate(song_row())])
        session = SearchSession(user_id="u", query="love", results=results)
        session.clear()
        assert session.query == ""
        assert session.results is None

    def test_sequence_increments(self):
        session = SearchSession(user_id="u")
        assert session.next_sequence() == 1
        assert session.next_sequence() == 2
        assert session.issued == 2


class TestSearchSessionRegistry:
    def test_get_creates_once_per_user(self):
        registry = SearchSessionRegistry()
        a = registry.get("a")
        assert registry.get("a") is a
        assert registry.get("b") is not a
        assert len(registry) == 2

    def test_clear(self):
        registry = SearchSessionRegistry()
        registry.get("a")
        registry.clear()
        assert len(registry) == 0

    def test_least_recently_used_session_evicted_when_full(self):
        registry = SearchSessionRegistry(maxsize=2)
        a = registry.get("a")
        b = registry.get("b")
        registry.get("a")

        registry.get("c")

        assert len(registry) == 2
        assert registry.get("a") is a
        assert registry.get("b") is not b

    def test_idle_session_expires(self):
        clock = FakeClock()
        registry = SearchSessionRegistry(ttl=60, timer=clock)
        session = registry.get("a")
        session.query = "love"

        clock.now = 61

        fresh = registry.get("a")
        assert fresh is not session
        assert fresh.query == ""

    def test_access_restarts_idle_timer(self):
        clock = FakeClock()
        registry = SearchSessionRegistry(ttl=60, timer=clock)
        session = registry.get("a")

        clock.now = 45
        registry.get("a")
        clock.now = 90

        assert registry.get("a") is session
