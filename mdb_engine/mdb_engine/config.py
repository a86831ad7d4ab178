"""Core engine configuration loaded from environment variables."""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Engine settings loaded from environment variables with MDB_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="MDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False

    # Database holding both the metadata stores and the tenant tables.
    database_url: str = "sqlite+aiosqlite:///.mdb/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # PostgreSQL truncates identifiers beyond 63 bytes; reject them instead.
    max_identifier_length: int = 63

    # Compare-and-swap attempts for owner/environment index rewrites.
    index_update_retries: int = 5

    structured_logging: bool = False

    @field_validator("index_update_retries", "max_identifier_length")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded engine settings (database=%s)", "sqlite" if settings.is_sqlite else "postgres")

    return settings
