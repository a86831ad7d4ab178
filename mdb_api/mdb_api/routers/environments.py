"""Environment endpoints, scoped to one owner."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mdb_api.dependencies import EngineSettingsDep, SessionDep
from mdb_api.services.environment_service import EnvironmentService

router = APIRouter(prefix="/environments", tags=["environments"])


class CreateEnvironmentRequest(BaseModel):
    name: str = Field(..., description="Environment name (letters, digits, underscores)")
    description: str = Field(default="")


class UpdateEnvironmentRequest(BaseModel):
    description: str | None = None
    new_name: str | None = Field(default=None, alias="newName")

    model_config = {"populate_by_name": True}


@router.post("/{user_id}")
async def create_environment(
    user_id: int,
    body: CreateEnvironmentRequest,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    service = EnvironmentService(session, settings)
    return await service.create_environment(user_id, body.name, body.description)


@router.get("/{user_id}")
async def list_environments(user_id: int, session: SessionDep, settings: EngineSettingsDep) -> list[dict[str, Any]]:
    service = EnvironmentService(session, settings)
    return await service.list_environments(user_id)


# Registered before ``/{user_id}/{env_name}`` so "count" is not read as a name.
@router.get("/{user_id}/count")
async def count_environments(user_id: int, session: SessionDep, settings: EngineSettingsDep) -> dict[str, int]:
    service = EnvironmentService(session, settings)
    return {"count": await service.count_environments(user_id)}


@router.get("/{user_id}/{env_name}")
async def get_environment(
    user_id: int,
    env_name: str,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    service = EnvironmentService(session, settings)
    return await service.get_environment(user_id, env_name)


@router.patch("/{user_id}/{env_name}")
async def update_environment(
    user_id: int,
    env_name: str,
    body: UpdateEnvironmentRequest,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    """Change the description and/or rename the environment.

    Renaming re-derives the identifier of every table in the environment.
    """
    service = EnvironmentService(session, settings)
    return await service.update_environment(
        user_id, env_name, description=body.description, new_name=body.new_name
    )


@router.delete("/{user_id}/{env_name}")
async def delete_environment(
    user_id: int,
    env_name: str,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    """Delete the environment and drop all of its tables."""
    service = EnvironmentService(session, settings)
    await service.delete_environment(user_id, env_name)
    return {"owner_id": user_id, "name": env_name, "deleted": True}
