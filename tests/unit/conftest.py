"""Unit test fixtures."""

from contextlib import contextmanager
from unittest.mock import Mock

import pytest

from config.settings import Settings
from core.telemetry import _cache_stats_var
from store.ratelimit import reset_rate_limiting

# Environment variables that would point tests at real services
_SERVICE_ENV_VARS = ("RECORD_STORE_URL", "RECORD_STORE_API_KEY", "SENTRY_DSN", "POSTHOG_API_KEY")


def _provide(value):
    """A parameterless dependency returning ``value`` (FastAPI would treat a parameter as input)."""
    return lambda: value


@contextmanager
def override_deps(app, overrides):
    """Replace FastAPI dependencies with fixed values for the duration of the block.

    Args:
        app: The FastAPI application
        overrides: Maps each dependency function to the value it should return
    """
    for dependency, value in overrides.items():
        app.dependency_overrides[dependency] = _provide(value)
    try:
        yield app
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings on an in-memory SQLite store with telemetry and Sentry off."""
    for var in _SERVICE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return Settings(
        _env_file=None,
        record_store_backend="sqlite",
        sqlite_db_path=":memory:",
        enable_telemetry=False,
    )


@pytest.fixture
def mock_posthog_client():
    return Mock(spec=["capture", "flush", "shutdown"])


@pytest.fixture(autouse=True)
def reset_state():
    """Isolate the per-loop request limits and the per-request cache stats."""
    token = _cache_stats_var.set(None)
    yield
    reset_rate_limiting()
    _cache_stats_var.reset(token)
