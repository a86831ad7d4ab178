"""Tests for mdb_api/mdb_api/routers/environments.py"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from mdb_engine.errors import ConflictError, ValidationError

_ENV = {"owner_id": 1, "name": "prod", "description": "", "tables": []}


class TestEnvironmentRoutes:
    @pytest.mark.asyncio
    async def test_create(self, client) -> None:
        with patch("mdb_api.routers.environments.EnvironmentService") as MockService:
            instance = MockService.return_value
            instance.create_environment = AsyncMock(return_value=_ENV)
            resp = await client.post("/api/v1/environments/1", json={"name": "prod"})

        assert resp.status_code == 200
        assert resp.json() == _ENV
        instance.create_environment.assert_awaited_once_with(1, "prod", "")

    @pytest.mark.asyncio
    async def test_create_invalid_name(self, client) -> None:
        with patch("mdb_api.routers.environments.EnvironmentService") as MockService:
            MockService.return_value.create_environment = AsyncMock(
                side_effect=ValidationError("Environment name 'a b' may only contain letters, digits and underscores")
            )
            resp = await client.post("/api/v1/environments/1", json={"name": "a b"})

        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation_error"

    @pytest.mark.asyncio
    async def test_count_is_not_an_environment_name(self, client) -> None:
        with patch("mdb_api.routers.environments.EnvironmentService") as MockService:
            instance = MockService.return_value
            instance.count_environments = AsyncMock(return_value=3)
            instance.get_environment = AsyncMock()
            resp = await client.get("/api/v1/environments/1/count")

        assert resp.json() == {"count": 3}
        instance.get_environment.assert_not_called()

    @pytest.mark.asyncio
    async def test_rename_accepts_camel_case(self, client) -> None:
        with patch("mdb_api.routers.environments.EnvironmentService") as MockService:
            instance = MockService.return_value
            instance.update_environment = AsyncMock(return_value={**_ENV, "name": "live"})
            resp = await client.patch("/api/v1/environments/1/prod", json={"newName": "live"})

        assert resp.status_code == 200
        instance.update_environment.assert_awaited_once_with(1, "prod", description=None, new_name="live")

    @pytest.mark.asyncio
    async def test_rename_conflict(self, client) -> None:
        with patch("mdb_api.routers.environments.EnvironmentService") as MockService:
            MockService.return_value.update_environment = AsyncMock(
                side_effect=ConflictError("Environment 'live' already exists")
            )
            resp = await client.patch("/api/v1/environments/1/prod", json={"newName": "live"})

        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_delete(self, client) -> None:
        with patch("mdb_api.routers.environments.EnvironmentService") as MockService:
            MockService.return_value.delete_environment = AsyncMock(return_value=None)
            resp = await client.delete("/api/v1/environments/1/prod")

        assert resp.json() == {"owner_id": 1, "name": "prod", "deleted": True}
