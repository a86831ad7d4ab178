"""Tenant table endpoints.

Tables are created under an owner's environment and addressed afterwards
by their derived identifier (``/tables/by-id/{table_id}``).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query
from mdb_engine.models import FieldDefinition
from mdb_engine.schema import TableChanges
from pydantic import BaseModel, Field

from mdb_api.dependencies import EngineSettingsDep, SessionDep
from mdb_api.services.table_service import TableService

router = APIRouter(prefix="/tables", tags=["tables"])


class CreateTableRequest(BaseModel):
    name: str = Field(..., description="Table name, unique within the environment")
    description: str = Field(default="")
    fields: list[FieldDefinition] = Field(default_factory=list)


# -- by identifier ------------------------------------------------------------


@router.get("/by-id/{table_id}")
async def get_table(table_id: str, session: SessionDep, settings: EngineSettingsDep) -> dict[str, Any]:
    service = TableService(session, settings)
    return await service.get_table(table_id)


@router.patch("/by-id/{table_id}")
async def alter_table(
    table_id: str,
    body: TableChanges,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    """Apply a batch of schema changes and return the updated descriptor.

    Applied in order: description, field removals, field additions, field
    renames, table rename.
    """
    service = TableService(session, settings)
    return await service.alter_table(table_id, body)


@router.delete("/by-id/{table_id}")
async def delete_table(table_id: str, session: SessionDep, settings: EngineSettingsDep) -> dict[str, Any]:
    service = TableService(session, settings)
    await service.delete_table(table_id)
    return {"table_id": table_id, "deleted": True}


# -- by owner -----------------------------------------------------------------


@router.post("/{user_id}/{env_name}")
async def create_table(
    user_id: int,
    env_name: str,
    body: CreateTableRequest,
    session: SessionDep,
    settings: EngineSettingsDep,
) -> dict[str, Any]:
    service = TableService(session, settings)
    return await service.create_table(user_id, env_name, body.name, body.description, body.fields)


@router.get("/{user_id}")
async def list_tables(
    user_id: int,
    session: SessionDep,
    settings: EngineSettingsDep,
    environment: str | None = Query(default=None, description="Restrict to one environment"),
) -> list[dict[str, Any]]:
    service = TableService(session, settings)
    return await service.list_tables(user_id, environment)


@router.get("/{user_id}/count")
async def count_tables(user_id: int, session: SessionDep, settings: EngineSettingsDep) -> dict[str, int]:
    service = TableService(session, settings)
    return {"count": await service.count_tables(user_id)}
