"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from typing import Self

from mdb_engine.config import Settings, load_settings
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``API_`` (e.g. ``API_HOST=0.0.0.0``) or through a ``.env`` file in the
    working directory.  Engine tuning (identifier length, index retries)
    is read separately from the ``MDB_`` variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Holds both the metadata stores and the tenant tables.
    # ``postgresql+asyncpg://`` in production, ``sqlite+aiosqlite://`` locally.
    database_url: str = "sqlite+aiosqlite:///.mdb/state.db"

    # Origins permitted by the CORS middleware.
    cors_origins: list[str] = ["http://localhost:3000"]

    # Whether CORS responses include credentials (cookies, auth headers).
    cors_allow_credentials: bool = True

    # Single-line JSON logs instead of plain text.
    structured_logging: bool = False

    @model_validator(mode="after")
    def _no_wildcard_with_credentials(self) -> Self:
        """Browsers drop credentialed responses that carry ``Allow-Origin: *``."""
        if self.cors_allow_credentials and "*" in self.cors_origins:
            raise ValueError("wildcard CORS origin '*' is not allowed when cors_allow_credentials is true")
        return self

    def engine_settings(self) -> Settings:
        """Engine settings pointing at this API's database."""
        return load_settings(database_url=self.database_url, debug=self.debug)


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
