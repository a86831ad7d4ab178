"""Generic single-table record access for tenant tables."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from mdb_engine.errors import NotFoundError, ValidationError
from mdb_engine.identifiers import RESERVED_COLUMN
from mdb_engine.models import TableDescriptor
from mdb_engine.records.validator import RecordValidator
from mdb_engine.schema.ddl import build_table, map_store_error
from mdb_engine.state.repository import MetadataRepository
from mdb_engine.types import FieldKind, from_storage, to_storage, validate_runtime_value

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000

# Kinds whose query-string filter values are taken verbatim instead of JSON-decoded.
_TEXT_KINDS = frozenset(
    {
        FieldKind.STRING,
        FieldKind.STRING_MAX,
        FieldKind.STRING_NOLIM,
        FieldKind.STRING_N,
        FieldKind.DATE,
        FieldKind.TIME,
        FieldKind.DATETIME,
        FieldKind.URL,
        FieldKind.EMAIL,
        FieldKind.PHONE,
        FieldKind.EMOJI,
    }
)


def parse_query_filters(descriptor: TableDescriptor, params: dict[str, str]) -> dict[str, Any]:
    """Convert raw query-string values into logical values for :meth:`RecordStore.list`."""
    filters: dict[str, Any] = {}
    for name, raw in params.items():
        if name == RESERVED_COLUMN:
            try:
                filters[name] = int(raw)
            except ValueError:
                raise ValidationError(f"Filter '{name}' must be an integer", field=name)
            continue
        field = descriptor.get_field(name)
        field_type = field.field_type if field is not None else None
        if field_type is None or field_type.kind in _TEXT_KINDS:
            filters[name] = raw
            continue
        try:
            filters[name] = json.loads(raw)
        except ValueError:
            filters[name] = raw
    return filters


class RecordStore:
    """Insert, read, update and delete rows of one tenant table at a time.

    Writes are validated with :class:`RecordValidator`; reads are decoded
    with :func:`~mdb_engine.types.from_storage`.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._metadata = MetadataRepository(session)
        self._validator = RecordValidator()

    async def descriptor(self, table_id: str) -> TableDescriptor:
        descriptor = await self._metadata.get_descriptor(table_id)
        if descriptor is None:
            raise NotFoundError(f"Table '{table_id}' does not exist")
        return descriptor

    @staticmethod
    def _decode(descriptor: TableDescriptor, row: Any) -> dict[str, Any]:
        mapping = row._mapping
        record: dict[str, Any] = {RESERVED_COLUMN: mapping[RESERVED_COLUMN]}
        for field in descriptor.fields:
            field_type = field.field_type
            value = mapping.get(field.name)
            record[field.name] = from_storage(value, field_type) if field_type is not None else value
        return record

    async def _fetch(self, descriptor: TableDescriptor, table: Table, record_id: int) -> dict[str, Any] | None:
        conn = await self._session.connection()
        result = await conn.execute(select(table).where(table.c[RESERVED_COLUMN] == record_id))
        row = result.first()
        return self._decode(descriptor, row) if row is not None else None

    async def insert(self, table_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert one record and return it as stored (including ``_id`` and defaults)."""
        descriptor = await self.descriptor(table_id)
        values = self._validator.validate(descriptor, payload)
        table = build_table(table_id, descriptor.fields)
        conn = await self._session.connection()
        try:
            result = await conn.execute(insert(table).values(**values))
        except DBAPIError as exc:
            raise map_store_error(exc, operation="insert record", table_id=table_id) from exc
        record_id = result.inserted_primary_key[0]  # type: ignore[index]
        logger.debug("Inserted record %s into %s", record_id, table_id)
        record = await self._fetch(descriptor, table, record_id)
        assert record is not None
        return record

    async def get(self, table_id: str, record_id: int) -> dict[str, Any]:
        descriptor = await self.descriptor(table_id)
        record = await self._fetch(descriptor, build_table(table_id, descriptor.fields), record_id)
        if record is None:
            raise NotFoundError(f"Record '{record_id}' does not exist in table '{table_id}'")
        return record

    async def list(
        self,
        table_id: str,
        filters: dict[str, Any] | None = None,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return records matching all equality *filters*, ordered by ``_id``."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        descriptor = await self.descriptor(table_id)
        table = build_table(table_id, descriptor.fields)
        stmt = select(table)
        for name, value in (filters or {}).items():
            if name == RESERVED_COLUMN:
                stmt = stmt.where(table.c[RESERVED_COLUMN] == value)
                continue
            field = descriptor.get_field(name)
            field_type = field.field_type if field is not None else None
            if field_type is None:
                raise ValidationError(f"Cannot filter on unknown field '{name}'", field=name)
            if value is None:
                stmt = stmt.where(table.c[name].is_(None))
                continue
            issue = validate_runtime_value(value, field_type)
            if issue is not None:
                raise ValidationError(f"Filter '{name}': {issue.message}", field=name)
            stmt = stmt.where(table.c[name] == to_storage(value, field_type))
        stmt = stmt.order_by(table.c[RESERVED_COLUMN]).limit(limit).offset(offset)

        conn = await self._session.connection()
        try:
            result = await conn.execute(stmt)
        except DBAPIError as exc:
            raise map_store_error(exc, operation="list records", table_id=table_id) from exc
        return [self._decode(descriptor, row) for row in result.all()]

    async def update(self, table_id: str, record_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        """Update the supplied fields of one record and return the updated record."""
        descriptor = await self.descriptor(table_id)
        values = self._validator.validate(descriptor, payload, partial=True)
        if not values:
            raise ValidationError("No fields to update")
        table = build_table(table_id, descriptor.fields)
        conn = await self._session.connection()
        try:
            result = await conn.execute(
                update(table).where(table.c[RESERVED_COLUMN] == record_id).values(**values)
            )
        except DBAPIError as exc:
            raise map_store_error(exc, operation="update record", table_id=table_id) from exc
        if result.rowcount == 0:
            raise NotFoundError(f"Record '{record_id}' does not exist in table '{table_id}'")
        record = await self._fetch(descriptor, table, record_id)
        assert record is not None
        return record

    async def delete(self, table_id: str, record_id: int) -> None:
        descriptor = await self.descriptor(table_id)
        table = build_table(table_id, descriptor.fields)
        conn = await self._session.connection()
        try:
            result = await conn.execute(delete(table).where(table.c[RESERVED_COLUMN] == record_id))
        except DBAPIError as exc:
            raise map_store_error(exc, operation="delete record", table_id=table_id) from exc
        if result.rowcount == 0:
            raise NotFoundError(f"Record '{record_id}' does not exist in table '{table_id}'")
