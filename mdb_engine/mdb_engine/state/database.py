"""Engine construction and session scoping for the MDB database.

One database holds both the metadata stores and every tenant table.  The
URL scheme picks the backend:

* ``postgresql+asyncpg://``: pooled engine with statement and lock timeouts
* ``sqlite+aiosqlite://``: local engine from :mod:`mdb_engine.state.sqlite_adapter`
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from mdb_engine.state.sqlite_adapter import get_local_engine
from mdb_engine.state.tables import Base

logger = logging.getLogger(__name__)

# Tenant DDL takes ACCESS EXCLUSIVE locks; a request waits at most
# ``lock_timeout`` for one instead of queueing behind a long transaction.
_POSTGRES_SERVER_SETTINGS: dict[str, str] = {
    "statement_timeout": "30000",
    "lock_timeout": "10000",
}


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create the async engine for *database_url*.

    Parameters
    ----------
    database_url:
        PostgreSQL (``postgresql+asyncpg``) or SQLite (``sqlite+aiosqlite``)
        URL.  A SQLite URL without a path is an in-memory database.
    pool_size:
        Persistent PostgreSQL connections (ignored for SQLite).
    max_overflow:
        Extra PostgreSQL connections allowed under load (ignored for SQLite).
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return get_local_engine(url.database or ":memory:")

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        connect_args={"server_settings": dict(_POSTGRES_SERVER_SETTINGS)},
    )
    logger.info("Created PostgreSQL engine for %s (pool_size=%d)", url.render_as_string(hide_password=True), pool_size)
    return engine


async def create_metadata_tables(engine: AsyncEngine) -> None:
    """Create ``users``, ``owner_tables``, ``environments`` and ``table_descriptors`` if missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Metadata tables created/verified")


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session whose transaction commits on clean exit.

    An exception inside the block rolls back every metadata write and every
    tenant DDL statement issued through the session.
    """
    async with async_sessionmaker(engine, expire_on_commit=False).begin() as session:
        yield session
