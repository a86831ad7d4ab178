"""Tests for mdb_api/mdb_api/routers/health.py"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from mdb_api import __version__


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "version": __version__, "db": "ok"}

    @pytest.mark.asyncio
    async def test_degraded_db_still_200(self, client, mock_session) -> None:
        mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["db"] == "degraded"


class TestReadiness:
    @pytest.mark.asyncio
    async def test_ready(self, client) -> None:
        resp = await client.get("/ready")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ready", "checks": {"db": "ok", "metadata": "ok"}}

    @pytest.mark.asyncio
    async def test_not_ready_when_db_down(self, client, mock_session) -> None:
        mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))
        resp = await client.get("/ready")
        assert resp.status_code == 503
        assert resp.json()["checks"]["db"] == "unavailable"

    @pytest.mark.asyncio
    async def test_ready_against_real_metadata(self, live_client) -> None:
        resp = await live_client.get("/ready")
        assert resp.status_code == 200
