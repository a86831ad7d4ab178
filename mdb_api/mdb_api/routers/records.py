"""Record endpoints for tenant tables."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query, Request
from mdb_engine.records.store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

from mdb_api.dependencies import SessionDep
from mdb_api.services.record_service import RecordService

router = APIRouter(prefix="/records", tags=["records"])

_PAGING_PARAMS = frozenset({"limit", "offset"})


@router.post("/{table_id}")
async def insert_record(
    table_id: str,
    session: SessionDep,
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Insert one record; the response includes ``_id`` and store defaults."""
    service = RecordService(session)
    return await service.insert_record(table_id, payload)


@router.get("/{table_id}")
async def list_records(
    table_id: str,
    request: Request,
    session: SessionDep,
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> list[dict[str, Any]]:
    """List records ordered by ``_id``.

    Every query parameter other than ``limit`` and ``offset`` is an
    equality filter on the field of the same name.
    """
    params = {key: value for key, value in request.query_params.items() if key not in _PAGING_PARAMS}
    service = RecordService(session)
    return await service.list_records(table_id, params, limit=limit, offset=offset)


@router.get("/{table_id}/{record_id}")
async def get_record(table_id: str, record_id: int, session: SessionDep) -> dict[str, Any]:
    service = RecordService(session)
    return await service.get_record(table_id, record_id)


@router.patch("/{table_id}/{record_id}")
async def update_record(
    table_id: str,
    record_id: int,
    session: SessionDep,
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    service = RecordService(session)
    return await service.update_record(table_id, record_id, payload)


@router.delete("/{table_id}/{record_id}")
async def delete_record(table_id: str, record_id: int, session: SessionDep) -> dict[str, Any]:
    service = RecordService(session)
    await service.delete_record(table_id, record_id)
    return {"table_id": table_id, "_id": record_id, "deleted": True}
