"""Owner account endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mdb_api.dependencies import EngineSettingsDep, SessionDep
from mdb_api.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, max_length=320)
    # bcrypt ignores input past 72 bytes.
    password: str = Field(..., min_length=8, max_length=72)


class UpdateUserRequest(BaseModel):
    username: str | None = Field(default=None, min_length=1, max_length=64)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    password: str | None = Field(default=None, min_length=8, max_length=72)


@router.post("")
async def create_user(body: CreateUserRequest, session: SessionDep, settings: EngineSettingsDep) -> dict[str, Any]:
    """Create an owner account with an empty table index."""
    service = UserService(session, settings)
    return await service.create_user(body.username, body.email, body.password)


@router.get("/{user_id}")
async def get_user(user_id: int, session: SessionDep, settings: EngineSettingsDep) -> dict[str, Any]:
    service = UserService(session, settings)
    return await service.get_user(user_id)


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    body: UpdateUserRequest,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    service = UserService(session, settings)
    return await service.update_user(user_id, username=body.username, email=body.email, password=body.password)


@router.delete("/{user_id}")
async def delete_user(user_id: int, session: SessionDep, settings: EngineSettingsDep) -> dict[str, Any]:
    """Delete the owner together with every environment and table it owns."""
    service = UserService(session, settings)
    await service.delete_user(user_id)
    return {"id": user_id, "deleted": True}
