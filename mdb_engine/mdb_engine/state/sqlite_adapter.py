"""SQLite backend for local-only MDB operation.

Hosts the metadata stores and the tenant tables in one aiosqlite database,
so the API runs without a PostgreSQL server and the test suite can issue
real DDL against an in-memory database.

Differences from the PostgreSQL backend:

* No connection pool; an in-memory database shares one connection so every
  session sees the same tables.
* ``_id`` aliases the ROWID; there is no sequence to rename with the table.
* ``ALTER TABLE ... DROP COLUMN`` needs SQLite 3.35 or newer.
* ``ADD COLUMN`` rejects non-constant defaults (``autoDate`` fields).
* The driver's implicit transaction handling is replaced by an explicit
  ``BEGIN`` so tenant DDL commits or rolls back with the metadata writes.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from sqlalchemy import Connection, event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

_MEMORY = ":memory:"

# First release with ALTER TABLE ... DROP COLUMN.
DROP_COLUMN_MIN_VERSION = (3, 35, 0)


def supports_drop_column(version: tuple[int, ...] = sqlite3.sqlite_version_info) -> bool:
    return version >= DROP_COLUMN_MIN_VERSION


def get_local_engine(db_path: Path | str = ".mdb/state.db") -> AsyncEngine:
    """Create an aiosqlite engine for *db_path*.

    Parameters
    ----------
    db_path:
        Database file; parent directories are created.  ``":memory:"``
        gives an ephemeral database shared by all sessions of the engine.
    """
    if str(db_path) == _MEMORY:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{_MEMORY}",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{path}",
            connect_args={"check_same_thread": False},
        )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn: object, _: object) -> None:
        # Leave transaction control to the "begin" listener below; the driver
        # would otherwise run DDL outside the session's transaction.
        dbapi_conn.isolation_level = None  # type: ignore[attr-defined]
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA journal_mode=WAL")
        # Environments and owner indexes cascade with their user.
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_transaction(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")

    if not supports_drop_column():
        logger.warning(
            "SQLite %s cannot drop columns; removeFields will fail with a store error", sqlite3.sqlite_version
        )
    logger.info("Created SQLite engine: %s", engine.url)
    return engine
