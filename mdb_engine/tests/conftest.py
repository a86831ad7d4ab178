"""Shared fixtures for engine tests.

Every test gets a fresh in-memory SQLite database (via aiosqlite) holding
both the metadata stores and the tenant tables, so DDL runs for real.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from mdb_engine.config import Settings, load_settings
from mdb_engine.state.database import create_metadata_tables
from mdb_engine.state.sqlite_adapter import get_local_engine
from mdb_engine.state.tables import EnvironmentTable, OwnerTablesTable, UserTable
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@pytest.fixture
def settings() -> Settings:
    return load_settings(database_url="sqlite+aiosqlite://", index_update_retries=3)


@pytest_asyncio.fixture
async def session() -> AsyncIterator[AsyncSession]:
    """Provide an async session backed by an in-memory SQLite database."""
    engine = get_local_engine(":memory:")
    await create_metadata_tables(engine)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def make_owner(session: AsyncSession):
    """Return a coroutine that inserts an owner, its empty table index and empty environments."""

    async def _make(owner_id: int = 42, *environments: str) -> int:
        session.add(
            UserTable(id=owner_id, username=f"user{owner_id}", email=f"user{owner_id}@example.com", password_hash="x")
        )
        await session.flush()
        session.add(OwnerTablesTable(owner_id=owner_id, tables="[]", count=0, version=0))
        for name in environments:
            session.add(EnvironmentTable(owner_id=owner_id, name=name, description="", tables="[]", version=0))
        await session.flush()
        return owner_id

    return _make
