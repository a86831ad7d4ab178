"""Shared fixtures for MDB API tests.

``client`` talks to an app whose database session is a mock; router tests
patch the service classes so no SQL runs.  ``live_client`` talks to an app
backed by a real in-memory SQLite database for end-to-end flows.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mdb_engine.state import create_metadata_tables
from mdb_engine.state.sqlite_adapter import get_local_engine
from sqlalchemy.ext.asyncio import async_sessionmaker

from mdb_api.config import APISettings
from mdb_api.dependencies import get_db_session, get_settings
from mdb_api.main import create_app


@pytest.fixture
def api_settings() -> APISettings:
    return APISettings(
        database_url="sqlite+aiosqlite://",
        cors_origins=["http://localhost:3000"],
        debug=True,
    )


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()

    result_mock = MagicMock()
    result_mock.scalar_one_or_none.return_value = None
    result_mock.scalars.return_value.all.return_value = []
    session.execute = AsyncMock(return_value=result_mock)
    return session


@pytest.fixture
def app(api_settings: APISettings, mock_session: AsyncMock) -> Any:
    app = create_app()

    async def _override_session():
        yield mock_session

    app.dependency_overrides[get_db_session] = _override_session
    app.dependency_overrides[get_settings] = lambda: api_settings
    return app


@pytest_asyncio.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def live_client(api_settings: APISettings) -> AsyncIterator[AsyncClient]:
    """Client for an app backed by a shared in-memory SQLite database.

    Each request gets its own session that commits on success and rolls
    back on error, matching :func:`mdb_api.dependencies.get_db_session`.
    """
    engine = get_local_engine(":memory:")
    await create_metadata_tables(engine)
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def _override_session():
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app = create_app()
    app.dependency_overrides[get_db_session] = _override_session
    app.dependency_overrides[get_settings] = lambda: api_settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await engine.dispose()
