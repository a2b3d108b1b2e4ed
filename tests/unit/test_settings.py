"""Unit tests for config/settings.py."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import DEFAULT_SQLITE_PATH, Settings, get_settings


class TestSqliteDbPath:
    @pytest.mark.parametrize("value", ["", ".", "  "])
    def test_blank_falls_back_to_default(self, value):
        assert Settings(_env_file=None, sqlite_db_path=value).sqlite_db_path == DEFAULT_SQLITE_PATH

    def test_custom_path_kept(self):
        s = Settings(_env_file=None, sqlite_db_path="/data/music.db")
        assert s.sqlite_db_path == Path("/data/music.db")


class TestDefaults:
    def test_search_limits(self, monkeypatch):
        for var in ("SEARCH_SONG_LIMIT", "SEARCH_ALBUM_LIMIT", "SEARCH_HISTORY_LIMIT"):
            monkeypatch.delenv(var, raising=False)
        s = Settings(_env_file=None)
        assert s.search_song_limit == 20
        assert s.search_album_limit == 10
        assert s.search_history_limit == 10
        assert s.discard_stale_results is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("RECORD_STORE_BACKEND", "sqlite")
        monkeypatch.setenv("RECORD_STORE_URL", "https://db.example.com/rest/v1")
        monkeypatch.setenv("DISCARD_STALE_RESULTS", "true")
        s = Settings(_env_file=None)
        assert s.record_store_backend == "sqlite"
        assert s.record_store_url == "https://db.example.com/rest/v1"
        assert s.discard_stale_results is True


class TestValidation:
    def test_log_level_upper_cased(self):
        s = Settings(_env_file=None, log_level="debug")
        assert s.log_level == "DEBUG"
        assert s.debug is True

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, record_store_backend="mysql")

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, search_song_limit=0)


class TestGetSettings:
    def test_caches_result(self):
        get_settings.cache_clear()
        s1 = get_settings()
        s2 = get_settings()
        assert isinstance(s1, Settings)
        assert s1 is s2
        get_settings.cache_clear()
