"""Tests for the SQLite adapter and session wiring used in local mode."""

from __future__ import annotations

import gc
import weakref
from pathlib import Path

import pytest
from mdb_engine.config import load_settings
from mdb_engine.errors import PartialFailureError
from mdb_engine.models import FieldDefinition
from mdb_engine.records import RecordStore
from mdb_engine.schema import SchemaEngine, TableChanges
from mdb_engine.state.database import create_metadata_tables, get_engine, get_session
from mdb_engine.state.repository import EnvironmentRepository, UserRepository
from mdb_engine.state.sqlite_adapter import get_local_engine, supports_drop_column
from mdb_engine.state.tables import UserTable
from sqlalchemy import func, inspect, select, text

# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------


class TestGetLocalEngine:
    def test_creates_in_memory_engine(self) -> None:
        engine = get_local_engine(":memory:")
        assert "sqlite" in str(engine.url)

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "deep" / "state.db"
        engine = get_local_engine(db_path)
        assert db_path.parent.exists()
        assert "state.db" in str(engine.url)

    def test_get_engine_dispatches_on_scheme(self, tmp_path: Path) -> None:
        engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'x.db'}")
        assert engine.dialect.name == "sqlite"


# ---------------------------------------------------------------------------
# Metadata tables and sessions
# ---------------------------------------------------------------------------


class TestMetadataTables:
    @pytest.mark.asyncio
    async def test_creates_all_stores(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "tables.db")
        await create_metadata_tables(engine)
        await create_metadata_tables(engine)  # idempotent

        async with engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        assert {"users", "owner_tables", "environments", "table_descriptors"} <= set(names)
        await engine.dispose()


class TestGetSession:
    @pytest.mark.asyncio
    async def test_commit_on_success(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "commit.db")
        await create_metadata_tables(engine)

        async with get_session(engine) as session:
            session.add(UserTable(username="ada", email="ada@example.com", password_hash="x"))

        async with get_session(engine) as session:
            count = (await session.execute(select(func.count()).select_from(UserTable))).scalar_one()
        assert count == 1
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, tmp_path: Path) -> None:
        engine = get_local_engine(tmp_path / "rollback.db")
        await create_metadata_tables(engine)

        with pytest.raises(RuntimeError):
            async with get_session(engine) as session:
                session.add(UserTable(username="ada", email="ada@example.com", password_hash="x"))
                await session.flush()
                raise RuntimeError("boom")

        async with get_session(engine) as session:
            count = (await session.execute(select(func.count()).select_from(UserTable))).scalar_one()
        assert count == 0
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_engine_is_not_retained_after_use(self) -> None:
        engine = get_local_engine(":memory:")
        async with get_session(engine):
            pass
        await engine.dispose()

        ref = weakref.ref(engine)
        del engine
        gc.collect()
        assert ref() is None


class TestDropColumnSupport:
    def test_version_gate(self) -> None:
        assert supports_drop_column((3, 35, 0))
        assert supports_drop_column((3, 45, 1))
        assert not supports_drop_column((3, 34, 1))

    @pytest.mark.asyncio
    async def test_memory_engine_is_shared_across_sessions(self) -> None:
        engine = get_engine("sqlite+aiosqlite://")
        await create_metadata_tables(engine)

        async with get_session(engine) as session:
            session.add(UserTable(username="ada", email="ada@example.com", password_hash="x"))
        async with get_session(engine) as session:
            count = (await session.execute(select(func.count()).select_from(UserTable))).scalar_one()

        assert count == 1
        await engine.dispose()


class TestTransactionalDDL:
    @pytest.mark.asyncio
    async def test_failed_alter_rolls_back_physical_changes(self, tmp_path: Path) -> None:
        """A drop followed by a failing add leaves the descriptor and the table in agreement."""
        engine = get_local_engine(tmp_path / "ddl.db")
        await create_metadata_tables(engine)
        settings = load_settings(database_url="sqlite+aiosqlite://")

        async with get_session(engine) as session:
            user = await UserRepository(session).create("ada", "ada@example.com", "x")
            await EnvironmentRepository(session).create(user.id, "e1", "")
            descriptor = await SchemaEngine(session, settings).create_table(
                user.id,
                "e1",
                "t1",
                "",
                [FieldDefinition(name="count", type="integer"), FieldDefinition(name="title", type="string")],
            )
            await RecordStore(session).insert(descriptor.table_id, {"count": 1, "title": "x"})

        changes = TableChanges(
            removeFields=["count"],
            addFields=[FieldDefinition(name="req", type="integer", notNull=True)],
        )
        with pytest.raises(PartialFailureError) as exc_info:
            async with get_session(engine) as session:
                await SchemaEngine(session, settings).alter_table(descriptor.table_id, changes)
        assert exc_info.value.completed_steps[0] == "drop column count"

        async with get_session(engine) as session:
            stored = await SchemaEngine(session, settings).metadata.get_descriptor(descriptor.table_id)
            rows = (await session.execute(text(f'PRAGMA table_info("{descriptor.table_id}")'))).all()

        assert stored is not None
        assert stored.field_names() == ["count", "title"]
        assert [row[1] for row in rows] == ["_id", "count", "title"]
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_create_table_rolls_back_with_session(self) -> None:
        engine = get_local_engine(":memory:")
        await create_metadata_tables(engine)

        with pytest.raises(RuntimeError):
            async with get_session(engine) as session:
                await session.execute(text('CREATE TABLE "_1_e1_scratch" ("_id" INTEGER PRIMARY KEY)'))
                raise RuntimeError("boom")

        async with engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        assert "_1_e1_scratch" not in names
        await engine.dispose()
