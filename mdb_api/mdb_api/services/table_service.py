"""Tenant table management."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from mdb_engine.config import Settings
from mdb_engine.errors import NotFoundError
from mdb_engine.models import FieldDefinition
from mdb_engine.schema import SchemaEngine, TableChanges
from mdb_engine.state import EnvironmentRepository
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class TableService:
    """Thin orchestration over :class:`SchemaEngine` returning JSON-ready dicts."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._engine = SchemaEngine(session, settings)
        self._environments = EnvironmentRepository(session)

    async def create_table(
        self,
        owner_id: int,
        environment_name: str,
        tablename: str,
        description: str = "",
        fields: Sequence[FieldDefinition] = (),
    ) -> dict[str, Any]:
        descriptor = await self._engine.create_table(owner_id, environment_name, tablename, description, fields)
        return descriptor.to_json()

    async def get_table(self, table_id: str) -> dict[str, Any]:
        descriptor = await self._engine.metadata.get_descriptor(table_id)
        if descriptor is None:
            raise NotFoundError(f"Table '{table_id}' does not exist")
        return descriptor.to_json()

    async def list_tables(self, owner_id: int, environment_name: str | None = None) -> list[dict[str, Any]]:
        """List the owner's tables, optionally restricted to one environment."""
        if await self._engine.metadata.get_owner_index(owner_id) is None:
            raise NotFoundError(f"User with id '{owner_id}' does not exist")
        if environment_name is not None and await self._environments.get(owner_id, environment_name) is None:
            raise NotFoundError(f"Environment '{environment_name}' does not exist")
        descriptors = await self._engine.metadata.list_descriptors(owner_id, environment_name)
        return [descriptor.to_json() for descriptor in descriptors]

    async def count_tables(self, owner_id: int) -> int:
        count = await self._engine.metadata.get_owner_count(owner_id)
        if count is None:
            raise NotFoundError(f"User with id '{owner_id}' does not exist")
        return count

    async def alter_table(self, table_id: str, changes: TableChanges) -> dict[str, Any]:
        descriptor = await self._engine.alter_table(table_id, changes)
        return descriptor.to_json()

    async def delete_table(self, table_id: str) -> None:
        await self._engine.delete_table(table_id)
