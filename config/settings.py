"""Service configuration, read from the environment and an optional ``.env`` file."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SQLITE_PATH = Path("music.db")


class Settings(BaseSettings):
    """Environment-backed settings. Variable names are the upper-cased field names."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    app_name: str = "Music-Search-Service"
    app_version: str = "0.1.0"
    environment: Literal["production", "staging", "development"] = "production"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_file: Path | None = Field(None, description="Also write logs to this file")

    # Record store
    record_store_backend: Literal["postgrest", "sqlite"] = "postgrest"
    record_store_url: str | None = Field(
        None, description="REST endpoint of the managed backend, e.g. https://<project>/rest/v1"
    )
    record_store_api_key: str | None = None
    sqlite_db_path: Path = DEFAULT_SQLITE_PATH
    record_store_timeout: float = Field(10.0, gt=0, description="HTTP timeout in seconds")
    record_store_rate_limit: int = Field(600, gt=0, description="Requests per minute")
    record_store_max_concurrent: int = Field(10, gt=0)
    record_store_max_retries: int = Field(2, ge=0, description="Retries after a 429 response")

    # Search
    search_song_limit: int = Field(20, gt=0)
    search_album_limit: int = Field(10, gt=0)
    search_history_limit: int = Field(10, gt=0)
    discard_stale_results: bool = Field(
        False, description="Publish only the newest search's results in each session"
    )
    query_cache_maxsize: int = Field(4096, gt=0)
    session_registry_maxsize: int = Field(10_000, gt=0, description="Most search sessions kept")
    session_ttl_seconds: float = Field(
        3600, gt=0, description="Idle seconds before a session is dropped"
    )

    # Observability
    enable_telemetry: bool = True
    posthog_api_key: str | None = None
    posthog_host: str = "https://us.i.posthog.com"
    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = Field(1.0, ge=0, le=1)

    @field_validator("sqlite_db_path", mode="before")
    @classmethod
    def _default_blank_sqlite_path(cls, value):
        # SQLITE_DB_PATH= in a .env file arrives as an empty string
        if value is None or str(value).strip() in ("", "."):
            return DEFAULT_SQLITE_PATH
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def debug(self) -> bool:
        return self.log_level == "DEBUG"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
