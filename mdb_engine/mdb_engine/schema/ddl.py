"""Physical store: DDL against the tenant tables.

Every statement runs on the connection of the caller's ``AsyncSession`` so
that schema changes join the same transaction as the metadata writes.
Tables are described with SQLAlchemy Core (:class:`~sqlalchemy.Table`) and
created with :class:`~sqlalchemy.schema.CreateTable`; ``ALTER TABLE``
variants that Core does not model are rendered by hand with every
identifier passed through the dialect's quoting preparer.

Raw driver errors are translated by :func:`map_store_error` into
:class:`~mdb_engine.errors.StoreError` with a table/field-scoped message.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import Column, Integer, MetaData, String, Table, func, text
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession
from sqlalchemy.schema import DDL, CreateTable, DropTable

from mdb_engine.errors import StoreError
from mdb_engine.identifiers import RESERVED_COLUMN
from mdb_engine.models import FieldDefinition
from mdb_engine.types import FieldKind, FieldType, physical_column

logger = logging.getLogger(__name__)

_AUTO_DATE_DEFAULTS = {
    FieldKind.DATE: func.current_date,
    FieldKind.TIME: func.current_time,
    FieldKind.DATETIME: func.current_timestamp,
}


# ---------------------------------------------------------------------------
# Store error mapping
# ---------------------------------------------------------------------------

_Formatter = Callable[[re.Match[str], str, str | None], StoreError]


def _field_missing(match: re.Match[str], table_id: str, _field: str | None) -> StoreError:
    name = match.group("field")
    return StoreError(f"Field '{name}' does not exist in table '{table_id}'", table=table_id, field=name)


def _field_exists(match: re.Match[str], table_id: str, _field: str | None) -> StoreError:
    name = match.group("field")
    return StoreError(f"Field '{name}' already exists in table '{table_id}'", table=table_id, field=name)


def _table_exists(match: re.Match[str], table_id: str, _field: str | None) -> StoreError:
    name = match.group("table")
    return StoreError(f"Table '{name}' already exists", table=name)


def _table_missing(match: re.Match[str], table_id: str, _field: str | None) -> StoreError:
    name = match.group("table")
    return StoreError(f"Table '{name}' does not exist", table=name)


def _null_values(match: re.Match[str], table_id: str, field: str | None) -> StoreError:
    name = match.groupdict().get("field") or field
    return StoreError(
        f"Field '{name}' cannot be notNull without a default: table '{table_id}' already has rows",
        table=table_id,
        field=name,
    )


def _non_constant_default(match: re.Match[str], table_id: str, field: str | None) -> StoreError:
    return StoreError(
        f"Field '{field}' cannot be added with an automatic date to existing table '{table_id}' on this store",
        table=table_id,
        field=field,
    )


# PostgreSQL and SQLite phrasings; first match wins.
_STORE_ERROR_PATTERNS: list[tuple[re.Pattern[str], _Formatter]] = [
    (re.compile(r'column "?(?P<field>\w+)"? of relation "?\w+"? already exists', re.I), _field_exists),
    (re.compile(r"duplicate column name:\s*\"?(?P<field>\w+)", re.I), _field_exists),
    (re.compile(r'column "?(?P<field>\w+)"?(?: of relation "?\w+"?)? does not exist', re.I), _field_missing),
    (re.compile(r"no such column:\s*\"?(?:\w+\.)?(?P<field>\w+)", re.I), _field_missing),
    (re.compile(r'column "?(?P<field>\w+)"?(?: of relation "?\w+"?)? contains null values', re.I), _null_values),
    (re.compile(r"Cannot add a NOT NULL column with default value NULL", re.I), _null_values),
    (re.compile(r"Cannot add a column with non-constant default", re.I), _non_constant_default),
    (re.compile(r'relation "?(?P<table>\w+)"? already exists', re.I), _table_exists),
    (re.compile(r"table \"?(?P<table>\w+)\"? already exists", re.I), _table_exists),
    (re.compile(r'relation "?(?P<table>\w+)"? does not exist', re.I), _table_missing),
    (re.compile(r"no such table:\s*\"?(?:\w+\.)?(?P<table>\w+)", re.I), _table_missing),
]


def map_store_error(
    exc: BaseException,
    *,
    operation: str,
    table_id: str,
    field: str | None = None,
) -> StoreError:
    """Translate a raw store exception into a :class:`StoreError`.

    Known phrasings are mapped onto field- or table-scoped messages; anything
    else becomes ``"Failed to <operation> on table '<id>': <raw message>"``.
    """
    raw = str(getattr(exc, "orig", None) or exc)
    for pattern, formatter in _STORE_ERROR_PATTERNS:
        match = pattern.search(raw)
        if match is not None:
            return formatter(match, table_id, field)
    return StoreError(f"Failed to {operation} on table '{table_id}': {raw}", table=table_id, field=field)


# ---------------------------------------------------------------------------
# Column construction
# ---------------------------------------------------------------------------


def _server_default(field: FieldDefinition, field_type: FieldType) -> Any:
    if field.auto_date:
        return _AUTO_DATE_DEFAULTS[field_type.kind]()
    if not field.has_default:
        return None
    value = field.default
    if field_type.kind in (FieldKind.ARRAY, FieldKind.JSON):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return text(repr(value))
    if field_type.kind is FieldKind.DATETIME:
        return str(value).replace("T", " ")
    return str(value)


def build_column(field: FieldDefinition) -> Column:
    """Return the physical :class:`Column` for a validated field definition."""
    field_type = field.field_type
    if field_type is None:
        raise ValueError(f"Field '{field.name}' has an invalid type '{field.type}'")
    return Column(
        field.name,
        physical_column(field_type).sa_type(),
        nullable=not field.not_null,
        server_default=_server_default(field, field_type),
    )


def build_table(table_id: str, fields: Iterable[FieldDefinition]) -> Table:
    """Describe a tenant table: implicit ``_id`` primary key plus one column per field."""
    return Table(
        table_id,
        MetaData(),
        Column(RESERVED_COLUMN, Integer, primary_key=True, autoincrement=True),
        *(build_column(field) for field in fields),
    )


# ---------------------------------------------------------------------------
# PhysicalStore
# ---------------------------------------------------------------------------


class PhysicalStore:
    """Issues DDL for tenant tables on the session's connection."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _connection(self) -> AsyncConnection:
        return await self._session.connection()

    @staticmethod
    def _quote(dialect: Dialect, name: str) -> str:
        return dialect.identifier_preparer.quote(name)

    async def _execute_ddl(self, conn: AsyncConnection, statement: str) -> None:
        # DDL() applies %-formatting to its text.
        await conn.execute(DDL(statement.replace("%", "%%")))

    async def create_table(self, table_id: str, fields: Iterable[FieldDefinition]) -> None:
        table = build_table(table_id, fields)
        conn = await self._connection()
        try:
            await conn.execute(CreateTable(table))
        except DBAPIError as exc:
            logger.warning("CREATE TABLE %s failed: %s", table_id, exc.orig)
            raise map_store_error(exc, operation="create table", table_id=table_id) from exc
        logger.info("Created table %s (%d columns)", table_id, len(table.columns))

    async def drop_table(self, table_id: str) -> None:
        table = Table(table_id, MetaData())
        conn = await self._connection()
        try:
            await conn.execute(DropTable(table))
        except DBAPIError as exc:
            logger.warning("DROP TABLE %s failed: %s", table_id, exc.orig)
            raise map_store_error(exc, operation="drop table", table_id=table_id) from exc
        logger.info("Dropped table %s", table_id)

    async def add_column(self, table_id: str, field: FieldDefinition) -> None:
        conn = await self._connection()
        dialect = conn.dialect
        column = build_column(field)
        parts = [self._quote(dialect, column.name), column.type.compile(dialect=dialect)]
        default_sql = self._render_default(dialect, column)
        if default_sql is not None:
            parts.append(f"DEFAULT {default_sql}")
        if not column.nullable:
            parts.append("NOT NULL")
        statement = f"ALTER TABLE {self._quote(dialect, table_id)} ADD COLUMN {' '.join(parts)}"
        try:
            await self._execute_ddl(conn, statement)
        except DBAPIError as exc:
            logger.warning("ADD COLUMN %s.%s failed: %s", table_id, field.name, exc.orig)
            raise map_store_error(exc, operation="add field", table_id=table_id, field=field.name) from exc
        logger.info("Added column %s.%s", table_id, field.name)

    async def drop_column(self, table_id: str, field_name: str) -> None:
        conn = await self._connection()
        dialect = conn.dialect
        statement = f"ALTER TABLE {self._quote(dialect, table_id)} DROP COLUMN {self._quote(dialect, field_name)}"
        try:
            await self._execute_ddl(conn, statement)
        except DBAPIError as exc:
            logger.warning("DROP COLUMN %s.%s failed: %s", table_id, field_name, exc.orig)
            raise map_store_error(exc, operation="remove field", table_id=table_id, field=field_name) from exc
        logger.info("Dropped column %s.%s", table_id, field_name)

    async def rename_column(self, table_id: str, old_name: str, new_name: str) -> None:
        conn = await self._connection()
        dialect = conn.dialect
        statement = (
            f"ALTER TABLE {self._quote(dialect, table_id)} "
            f"RENAME COLUMN {self._quote(dialect, old_name)} TO {self._quote(dialect, new_name)}"
        )
        try:
            await self._execute_ddl(conn, statement)
        except DBAPIError as exc:
            logger.warning("RENAME COLUMN %s.%s failed: %s", table_id, old_name, exc.orig)
            raise map_store_error(exc, operation="rename field", table_id=table_id, field=old_name) from exc
        logger.info("Renamed column %s.%s -> %s", table_id, old_name, new_name)

    async def rename_table(self, old_id: str, new_id: str) -> None:
        """Rename a table and, on PostgreSQL, the sequence behind its ``_id`` column."""
        conn = await self._connection()
        dialect = conn.dialect
        statement = f"ALTER TABLE {self._quote(dialect, old_id)} RENAME TO {self._quote(dialect, new_id)}"
        try:
            await self._execute_ddl(conn, statement)
            if dialect.name == "postgresql":
                await self._rename_pk_sequence(conn, new_id)
        except DBAPIError as exc:
            logger.warning("RENAME TABLE %s failed: %s", old_id, exc.orig)
            raise map_store_error(exc, operation="rename table", table_id=old_id) from exc
        logger.info("Renamed table %s -> %s", old_id, new_id)

    async def _rename_pk_sequence(self, conn: AsyncConnection, table_id: str) -> None:
        dialect = conn.dialect
        result = await conn.execute(
            text("SELECT pg_get_serial_sequence(:table_name, :column_name)"),
            {"table_name": self._quote(dialect, table_id), "column_name": RESERVED_COLUMN},
        )
        sequence = result.scalar()
        if not sequence:
            return
        new_sequence = self._quote(dialect, f"{table_id}_{RESERVED_COLUMN}_seq")
        # pg_get_serial_sequence already returns a quoted, schema-qualified name.
        await self._execute_ddl(conn, f"ALTER SEQUENCE {sequence} RENAME TO {new_sequence}")
        logger.info("Renamed sequence %s -> %s", sequence, new_sequence)

    @staticmethod
    def _render_default(dialect: Dialect, column: Column) -> str | None:
        default = column.server_default
        if default is None:
            return None
        arg = default.arg  # type: ignore[attr-defined]
        if isinstance(arg, str):
            return String().literal_processor(dialect=dialect)(arg)
        return str(arg.compile(dialect=dialect))
