"""Record CRUD against tenant tables."""

from __future__ import annotations

from typing import Any

from mdb_engine.records import RecordStore, parse_query_filters
from sqlalchemy.ext.asyncio import AsyncSession


class RecordService:
    def __init__(self, session: AsyncSession) -> None:
        self._store = RecordStore(session)

    async def insert_record(self, table_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._store.insert(table_id, payload)

    async def get_record(self, table_id: str, record_id: int) -> dict[str, Any]:
        return await self._store.get(table_id, record_id)

    async def list_records(
        self,
        table_id: str,
        params: dict[str, str],
        *,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        """List records matching the equality filters in *params*.

        Query-string values arrive as text and are decoded against the
        table's field types before they reach the store.
        """
        descriptor = await self._store.descriptor(table_id)
        filters = parse_query_filters(descriptor, params)
        return await self._store.list(table_id, filters, limit=limit, offset=offset)

    async def update_record(self, table_id: str, record_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._store.update(table_id, record_id, payload)

    async def delete_record(self, table_id: str, record_id: int) -> None:
        await self._store.delete(table_id, record_id)
