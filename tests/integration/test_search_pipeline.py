"""Integration tests for the search workflow against a real SQLite record store."""

import pytest

from cache.query_cache import CacheKey, QueryCache
from search.history import SearchHistoryView
from search.orchestrator import SearchOrchestrator
from search.presentation import build_search_page
from search.session import SearchSession

pytestmark = pytest.mark.integration


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def orchestrator(record_store, cache):
    return SearchOrchestrator(record_store, cache)


@pytest.fixture
def history_view(record_store, cache, orchestrator):
    return SearchHistoryView(record_store, cache, orchestrator)


@pytest.fixture
def session():
    return SearchSession(user_id="user-1")


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_finds_songs_by_title_and_artist(self, orchestrator, session):
        result = await orchestrator.execute_search(session, "love")

        assert {s.id for s in result.songs} == {"s-1", "s-3"}
        assert [a.title for a in result.albums] == ["Love Songs"]
        by_id = {s.id: s for s in result.songs}
        assert by_id["s-3"].artist.display_name == "The Lovers"
        assert by_id["s-3"].is_explicit is True
        assert by_id["s-1"].album.title == "A Night at the Opera"

    @pytest.mark.asyncio
    async def test_search_records_history(self, orchestrator, history_view, session, cache):
        await history_view.load("user-1")

        await orchestrator.execute_search(session, "  Queen ")
        await cache.wait_for_pending()

        entries = history_view.entries("user-1")
        assert [e.query for e in entries] == ["Queen"]

    @pytest.mark.asyncio
    async def test_history_newest_first(self, orchestrator, history_view, session, cache):
        await orchestrator.execute_search(session, "first")
        await orchestrator.execute_search(session, "second")

        entries = await history_view.load("user-1")

        assert [e.query for e in entries] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_history_capped_at_ten(self, orchestrator, history_view, session):
        for i in range(12):
            await orchestrator.execute_search(session, f"query {i}")

        entries = await history_view.load("user-1")

        assert len(entries) == 10
        assert entries[0].query == "query 11"

    @pytest.mark.asyncio
    async def test_history_isolated_per_user(self, orchestrator, history_view):
        await orchestrator.execute_search(SearchSession(user_id="user-2"), "secret")

        assert await history_view.load("user-1") == []

    @pytest.mark.asyncio
    async def test_no_match_gives_empty_results(self, orchestrator, session):
        result = await orchestrator.execute_search(session, "zzznothing")

        assert result.is_empty
        assert build_search_page(session, []).mode == "no_results"


class TestReplayAndClear:
    @pytest.mark.asyncio
    async def test_replay(self, orchestrator, history_view, session, cache):
        await orchestrator.execute_search(session, "radiohead")
        session.clear()
        entry = (await history_view.load("user-1"))[0]

        result = await history_view.replay(session, entry)
        await cache.wait_for_pending()

        assert session.query == "radiohead"
        assert {s.id for s in result.songs} == {"s-4", "s-5", "s-6"}
        assert [e.query for e in history_view.entries("user-1")] == ["radiohead", "radiohead"]

    @pytest.mark.asyncio
    async def test_clear_all_removes_rows(
        self, orchestrator, history_view, session, record_store, cache
    ):
        await orchestrator.execute_search(session, "love")
        await orchestrator.execute_search(SearchSession(user_id="user-2"), "love")

        await history_view.clear_all("user-1")

        assert cache.peek(CacheKey.search_history("user-1")) == []
        rows = await record_store.select("search_history")
        assert [r["user_id"] for r in rows] == ["user-2"]

    @pytest.mark.asyncio
    async def test_search_after_clear_repopulates(self, orchestrator, history_view, session, cache):
        await orchestrator.execute_search(session, "old")
        await history_view.clear_all("user-1")

        await orchestrator.execute_search(session, "new")
        await cache.wait_for_pending()

        assert [e.query for e in history_view.entries("user-1")] == ["new"]
