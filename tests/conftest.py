"""Shared test fixtures for pytest."""

from unittest.mock import AsyncMock

import pytest

from cache.query_cache import QueryCache
from search.history import SearchHistoryView
from search.orchestrator import SearchOrchestrator
from search.session import SearchSession


@pytest.fixture
def mock_record_store():
    """Create a mock record store returning no rows."""
    store = AsyncMock()
    store.select = AsyncMock(return_value=[])
    store.insert = AsyncMock(return_value="h-new")
    store.delete_where = AsyncMock(return_value=0)
    store.is_available = AsyncMock(return_value=True)
    store.close = AsyncMock()
    return store


@pytest.fixture
def query_cache():
    """A fresh query cache."""
    return QueryCache(maxsize=100)


@pytest.fixture
def session():
    """A fresh search session for user-1."""
    return SearchSession(user_id="user-1")


@pytest.fixture
def orchestrator(mock_record_store, query_cache):
    """Orchestrator over the mock store and a fresh cache."""
    return SearchOrchestrator(mock_record_store, query_cache)


@pytest.fixture
def history_view(mock_record_store, query_cache, orchestrator):
    """History view over the mock store and a fresh cache."""
    return SearchHistoryView(mock_record_store, query_cache, orchestrator)
