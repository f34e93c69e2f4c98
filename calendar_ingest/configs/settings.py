"""Centralized settings management for the calendar ingestion service."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the project root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # DATABASE
    # -------------------------------------------------------------------------
    DATABASE_URL: str = Field(..., min_length=1)

    # -------------------------------------------------------------------------
    # OBJECT STORAGE
    # -------------------------------------------------------------------------
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: SecretStr | None = None
    IMAGE_BUCKET: str = "event-images"
    STORAGE_URL_MARKER: str = "supabase.co/storage"

    # -------------------------------------------------------------------------
    # IMAGE SEARCH
    # -------------------------------------------------------------------------
    UNSPLASH_ACCESS_KEY: SecretStr | None = None
    UNSPLASH_API_URL: str = "https://api.unsplash.com"

    # -------------------------------------------------------------------------
    # INGESTION
    # -------------------------------------------------------------------------
    HTTP_TIMEOUT_S: float = 30.0
    USER_AGENT: str = "Community Calendar Bot/1.0"
    LOCAL_TIMEZONE: str = "America/Los_Angeles"
    INGEST_BATCH_SIZE: int = Field(default=100, ge=1)
    PAST_WINDOW_DAYS: int = 1
    FUTURE_WINDOW_DAYS: int = 365

    # -------------------------------------------------------------------------
    # IMAGE LIFECYCLE
    # -------------------------------------------------------------------------
    IMAGE_RETENTION_DAYS: int = Field(default=10, ge=1)
    BACKFILL_BATCH_LIMIT: int = Field(default=100, ge=1)
    BACKFILL_DELAY_S: float = 0.2

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    # BASE_DIR points to the calendar_ingest package
    BASE_DIR: Path = Path(__file__).resolve().parents[1]

    SOURCES_CONFIG_PATH: Path = BASE_DIR / "configs" / "sources.yaml"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_psycopg2_params(self) -> dict:
        """
        Parse DATABASE_URL into psycopg2-compatible connection parameters.

        Returns
        -------
        dict
            psycopg2 connection arguments (host, port, dbname, user, password).
        """
        url = make_url(self.DATABASE_URL)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }

    @property
    def storage_enabled(self) -> bool:
        """Whether object storage credentials are configured."""
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
