"""Unit tests for the metadata repositories.

These tests use an in-memory SQLite database via aiosqlite so they can
run without a PostgreSQL instance.

Covers:
- Descriptor CRUD and identifier replacement
- Owner and environment index append/remove/swap
- Compare-and-swap retry on concurrent index rewrites
- User and environment records
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from mdb_engine.errors import ConflictError, NotFoundError
from mdb_engine.models import FieldDefinition, TableDescriptor
from mdb_engine.state.repository import EnvironmentRepository, MetadataRepository, UserRepository
from mdb_engine.state.tables import OwnerTablesTable
from sqlalchemy import update


def _descriptor(table_id: str = "_42_e1_t1", tablename: str = "t1") -> TableDescriptor:
    return TableDescriptor(
        table_id=table_id,
        owner_id=42,
        environment_name="e1",
        tablename=tablename,
        description="orders",
        fields=[
            FieldDefinition(name="title", type="string"),
            FieldDefinition(name="count", type="integer", notNull=True, default=0),
        ],
    )


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


class TestDescriptors:
    @pytest.mark.asyncio
    async def test_put_and_get_round_trip(self, session, make_owner) -> None:
        await make_owner(42, "e1")
        repo = MetadataRepository(session)
        await repo.put_descriptor(_descriptor())

        loaded = await repo.get_descriptor("_42_e1_t1")
        assert loaded == _descriptor()

    @pytest.mark.asyncio
    async def test_put_overwrites(self, session, make_owner) -> None:
        await make_owner(42, "e1")
        repo = MetadataRepository(session)
        descriptor = _descriptor()
        await repo.put_descriptor(descriptor)
        descriptor.description = "changed"
        await repo.put_descriptor(descriptor)

        loaded = await repo.get_descriptor("_42_e1_t1")
        assert loaded is not None
        assert loaded.description == "changed"

    @pytest.mark.asyncio
    async def test_get_missing(self, session) -> None:
        assert await MetadataRepository(session).get_descriptor("_1_x_y") is None

    @pytest.mark.asyncio
    async def test_replace_descriptor_id(self, session, make_owner) -> None:
        await make_owner(42, "e1")
        repo = MetadataRepository(session)
        await repo.put_descriptor(_descriptor())

        await repo.replace_descriptor_id("_42_e1_t1", _descriptor("_42_e1_t2", "t2"))

        assert await repo.get_descriptor("_42_e1_t1") is None
        moved = await repo.get_descriptor("_42_e1_t2")
        assert moved is not None
        assert moved.tablename == "t2"

    @pytest.mark.asyncio
    async def test_replace_missing_raises(self, session) -> None:
        with pytest.raises(NotFoundError):
            await MetadataRepository(session).replace_descriptor_id("_1_a_b", _descriptor())

    @pytest.mark.asyncio
    async def test_delete(self, session, make_owner) -> None:
        await make_owner(42, "e1")
        repo = MetadataRepository(session)
        await repo.put_descriptor(_descriptor())

        assert await repo.delete_descriptor("_42_e1_t1") is True
        assert await repo.delete_descriptor("_42_e1_t1") is False

    @pytest.mark.asyncio
    async def test_list_by_environment(self, session, make_owner) -> None:
        await make_owner(42, "e1")
        repo = MetadataRepository(session)
        await repo.put_descriptor(_descriptor())
        other = _descriptor("_42_e2_t1").model_copy(update={"environment_name": "e2"})
        await repo.put_descriptor(other)

        assert len(await repo.list_descriptors(42)) == 2
        assert [d.table_id for d in await repo.list_descriptors(42, "e2")] == ["_42_e2_t1"]


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------


class TestOwnerIndex:
    @pytest.mark.asyncio
    async def test_append_remove_swap(self, session, make_owner) -> None:
        await make_owner(42)
        repo = MetadataRepository(session)

        await repo.append_to_owner_index(42, "_42_e1_a")
        await repo.append_to_owner_index(42, "_42_e1_b")
        await repo.append_to_owner_index(42, "_42_e1_a")
        assert await repo.get_owner_index(42) == ["_42_e1_a", "_42_e1_b"]
        assert await repo.get_owner_count(42) == 2

        await repo.swap_in_owner_index(42, "_42_e1_a", "_42_e1_c")
        assert await repo.get_owner_index(42) == ["_42_e1_c", "_42_e1_b"]

        await repo.remove_from_owner_index(42, "_42_e1_b")
        assert await repo.get_owner_index(42) == ["_42_e1_c"]
        assert await repo.get_owner_count(42) == 1

    @pytest.mark.asyncio
    async def test_missing_owner(self, session) -> None:
        repo = MetadataRepository(session)
        assert await repo.get_owner_index(9) is None
        with pytest.raises(NotFoundError):
            await repo.append_to_owner_index(9, "_9_e_t")

    @pytest.mark.asyncio
    async def test_retries_after_lost_race(self, session, make_owner) -> None:
        """A concurrent writer bumping the version forces one re-read, not a lost update."""
        await make_owner(42)
        repo = MetadataRepository(session, max_retries=3)
        original_execute = session.execute
        raced = False

        async def racing_execute(statement, *args, **kwargs):
            nonlocal raced
            if not raced and statement.is_dml and statement.table.name == "owner_tables":
                raced = True
                await original_execute(
                    update(OwnerTablesTable)
                    .where(OwnerTablesTable.owner_id == 42)
                    .values(tables='["_42_e1_other"]', count=1, version=OwnerTablesTable.version + 1)
                )
            return await original_execute(statement, *args, **kwargs)

        with patch.object(session, "execute", side_effect=racing_execute):
            await repo.append_to_owner_index(42, "_42_e1_mine")

        assert await repo.get_owner_index(42) == ["_42_e1_other", "_42_e1_mine"]

    @pytest.mark.asyncio
    async def test_conflict_after_exhausting_retries(self, session, make_owner) -> None:
        await make_owner(42)
        repo = MetadataRepository(session, max_retries=2)
        original_execute = session.execute

        async def always_racing(statement, *args, **kwargs):
            if statement.is_dml and statement.table.name == "owner_tables":
                await original_execute(
                    update(OwnerTablesTable)
                    .where(OwnerTablesTable.owner_id == 42)
                    .values(version=OwnerTablesTable.version + 1)
                )
            return await original_execute(statement, *args, **kwargs)

        with patch.object(session, "execute", side_effect=always_racing):
            with pytest.raises(ConflictError):
                await repo.append_to_owner_index(42, "_42_e1_t")


class TestEnvironmentIndex:
    @pytest.mark.asyncio
    async def test_append_swap_remove(self, session, make_owner) -> None:
        await make_owner(42, "e1")
        repo = MetadataRepository(session)

        await repo.append_to_environment_index(42, "e1", "_42_e1_a")
        await repo.swap_in_environment_index(42, "e1", "_42_e1_a", "_42_e1_b")
        assert await repo.get_environment_index(42, "e1") == ["_42_e1_b"]

        await repo.remove_from_environment_index(42, "e1", "_42_e1_b")
        assert await repo.get_environment_index(42, "e1") == []

    @pytest.mark.asyncio
    async def test_missing_environment(self, session, make_owner) -> None:
        await make_owner(42)
        repo = MetadataRepository(session)
        assert await repo.get_environment_index(42, "nope") is None
        with pytest.raises(NotFoundError):
            await repo.append_to_environment_index(42, "nope", "_42_nope_t")


# ---------------------------------------------------------------------------
# Users and environments
# ---------------------------------------------------------------------------


class TestUserRepository:
    @pytest.mark.asyncio
    async def test_create_initialises_owner_index(self, session) -> None:
        users = UserRepository(session)
        user = await users.create("ada", "ada@example.com", "hash")

        assert user.username == "ada"
        assert await MetadataRepository(session).get_owner_index(user.id) == []

    @pytest.mark.asyncio
    async def test_update_and_delete(self, session) -> None:
        users = UserRepository(session)
        user = await users.create("ada", "ada@example.com", "hash")

        updated = await users.update(user.id, email="lovelace@example.com")
        assert updated is not None
        assert updated.email == "lovelace@example.com"
        assert await users.get_password_hash(user.id) == "hash"

        assert await users.delete(user.id) is True
        assert await users.get(user.id) is None
        assert await MetadataRepository(session).get_owner_index(user.id) is None

    @pytest.mark.asyncio
    async def test_update_missing(self, session) -> None:
        assert await UserRepository(session).update(99, username="x") is None


class TestEnvironmentRepository:
    @pytest.mark.asyncio
    async def test_create_list_count(self, session, make_owner) -> None:
        await make_owner(42)
        envs = EnvironmentRepository(session)
        await envs.create(42, "prod", "production")
        await envs.create(42, "dev", "")

        assert [env.name for env in await envs.list_for_owner(42)] == ["dev", "prod"]
        assert await envs.count(42) == 2

    @pytest.mark.asyncio
    async def test_duplicate_name(self, session, make_owner) -> None:
        await make_owner(42, "prod")
        with pytest.raises(ConflictError):
            await EnvironmentRepository(session).create(42, "prod", "")

    @pytest.mark.asyncio
    async def test_update_rename_delete(self, session, make_owner) -> None:
        await make_owner(42, "dev")
        envs = EnvironmentRepository(session)

        assert await envs.update_description(42, "dev", "scratch") is True
        assert await envs.rename(42, "dev", "staging") is True
        env = await envs.get(42, "staging")
        assert env is not None
        assert env.description == "scratch"
        assert await envs.get(42, "dev") is None

        assert await envs.delete(42, "staging") is True
        assert await envs.count(42) == 0
