"""Tests for mdb_api/mdb_api/routers/users.py"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from mdb_engine.errors import NotFoundError

_USER = {"id": 1, "username": "ada", "email": "ada@example.com"}


class TestCreateUser:
    @pytest.mark.asyncio
    async def test_create(self, client) -> None:
        with patch("mdb_api.routers.users.UserService") as MockService:
            instance = MockService.return_value
            instance.create_user = AsyncMock(return_value=_USER)

            resp = await client.post(
                "/api/v1/users",
                json={"username": "ada", "email": "ada@example.com", "password": "correct horse"},
            )

        assert resp.status_code == 200
        assert resp.json() == _USER
        instance.create_user.assert_awaited_once_with("ada", "ada@example.com", "correct horse")

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, client) -> None:
        resp = await client.post("/api/v1/users", json={"username": "ada", "email": "a@b.co", "password": "short"})
        assert resp.status_code == 422


class TestUserById:
    @pytest.mark.asyncio
    async def test_get_missing(self, client) -> None:
        with patch("mdb_api.routers.users.UserService") as MockService:
            MockService.return_value.get_user = AsyncMock(side_effect=NotFoundError("User with id '9' does not exist"))
            resp = await client.get("/api/v1/users/9")

        assert resp.status_code == 404
        assert resp.json() == {"detail": "User with id '9' does not exist", "kind": "not_found"}

    @pytest.mark.asyncio
    async def test_update_passes_only_given_fields(self, client) -> None:
        with patch("mdb_api.routers.users.UserService") as MockService:
            instance = MockService.return_value
            instance.update_user = AsyncMock(return_value={**_USER, "email": "new@example.com"})
            resp = await client.patch("/api/v1/users/1", json={"email": "new@example.com"})

        assert resp.status_code == 200
        instance.update_user.assert_awaited_once_with(1, username=None, email="new@example.com", password=None)

    @pytest.mark.asyncio
    async def test_delete(self, client) -> None:
        with patch("mdb_api.routers.users.UserService") as MockService:
            instance = MockService.return_value
            instance.delete_user = AsyncMock(return_value=None)
            resp = await client.delete("/api/v1/users/1")

        assert resp.status_code == 200
        assert resp.json() == {"id": 1, "deleted": True}

    @pytest.mark.asyncio
    async def test_non_integer_id(self, client) -> None:
        resp = await client.get("/api/v1/users/abc")
        assert resp.status_code == 422
