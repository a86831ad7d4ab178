"""Repository classes providing CRUD access to the MDB metadata stores.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
(or execute a Core statement directly); the caller is responsible for calling
``session.commit()`` (or relying on the ``get_session`` context manager).

The owner and environment table indexes are JSON lists stored in a single
column.  Rewrites are conditional on the row's ``version`` counter: a writer
that lost a race re-reads the list and re-applies its change instead of
overwriting the other writer's result.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mdb_engine.errors import ConflictError, NotFoundError
from mdb_engine.models import EnvironmentRecord, FieldDefinition, TableDescriptor, UserRecord
from mdb_engine.state.tables import (
    EnvironmentTable,
    OwnerTablesTable,
    TableDescriptorTable,
    UserTable,
)

logger = logging.getLogger(__name__)

ListMutation = Callable[[list[str]], list[str]]


def _dump_list(values: list[str]) -> str:
    return json.dumps(values, separators=(",", ":"))


def _load_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return list(json.loads(raw))


def _appending(table_id: str) -> ListMutation:
    def mutate(current: list[str]) -> list[str]:
        if table_id in current:
            return current
        return [*current, table_id]

    return mutate


def _removing(table_id: str) -> ListMutation:
    def mutate(current: list[str]) -> list[str]:
        return [entry for entry in current if entry != table_id]

    return mutate


def _swapping(old_id: str, new_id: str) -> ListMutation:
    """Replace *old_id* with *new_id* in place, keeping list order."""

    def mutate(current: list[str]) -> list[str]:
        result = [entry for entry in current if entry != new_id]
        if old_id in result:
            result[result.index(old_id)] = new_id
        else:
            logger.warning("Index swap: '%s' not present, appending '%s'", old_id, new_id)
            result.append(new_id)
        return result

    return mutate


def _to_descriptor(row: TableDescriptorTable) -> TableDescriptor:
    return TableDescriptor(
        table_id=row.table_id,
        owner_id=row.owner_id,
        environment_name=row.environment_name,
        tablename=row.tablename,
        description=row.description,
        fields=[FieldDefinition.model_validate(item) for item in json.loads(row.fields or "[]")],
    )


def _to_environment(row: EnvironmentTable) -> EnvironmentRecord:
    return EnvironmentRecord(
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        tables=_load_list(row.tables),
    )


def _to_user(row: UserTable) -> UserRecord:
    return UserRecord(id=row.id, username=row.username, email=row.email)


# ---------------------------------------------------------------------------
# UserRepository
# ---------------------------------------------------------------------------


class UserRepository:
    """CRUD operations for the ``users`` table.

    Creating a user also creates its empty owner table index so that the
    index row always exists for a live owner.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, username: str, email: str, password_hash: str) -> UserRecord:
        row = UserTable(username=username, email=email, password_hash=password_hash)
        self._session.add(row)
        await self._session.flush()
        self._session.add(OwnerTablesTable(owner_id=row.id, tables="[]", count=0, version=0))
        await self._session.flush()
        return _to_user(row)

    async def get(self, user_id: int) -> UserRecord | None:
        stmt = select(UserTable).where(UserTable.id == user_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_user(row) if row is not None else None

    async def get_password_hash(self, user_id: int) -> str | None:
        stmt = select(UserTable.password_hash).where(UserTable.id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def exists(self, user_id: int) -> bool:
        return await self.get(user_id) is not None

    async def update(
        self,
        user_id: int,
        *,
        username: str | None = None,
        email: str | None = None,
        password_hash: str | None = None,
    ) -> UserRecord | None:
        """Update the given attributes; returns ``None`` if the user does not exist."""
        row = await self._session.get(UserTable, user_id)
        if row is None:
            return None
        if username is not None:
            row.username = username
        if email is not None:
            row.email = email
        if password_hash is not None:
            row.password_hash = password_hash
        await self._session.flush()
        return _to_user(row)

    async def delete(self, user_id: int) -> bool:
        """Delete the user and its owner index.  Returns ``False`` if absent."""
        await self._session.execute(delete(OwnerTablesTable).where(OwnerTablesTable.owner_id == user_id))
        result = await self._session.execute(delete(UserTable).where(UserTable.id == user_id))
        await self._session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# EnvironmentRepository
# ---------------------------------------------------------------------------


class EnvironmentRepository:
    """CRUD operations for the ``environments`` table (excluding its table index)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, owner_id: int, name: str, description: str) -> EnvironmentRecord:
        """Create a new, empty environment.

        Raises
        ------
        ConflictError
            If the owner already has an environment with that name.
        """
        if await self.get(owner_id, name) is not None:
            raise ConflictError(f"Environment '{name}' already exists")
        row = EnvironmentTable(owner_id=owner_id, name=name, description=description, tables="[]", version=0)
        try:
            self._session.add(row)
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ConflictError(f"Environment '{name}' already exists")
        return _to_environment(row)

    async def get(self, owner_id: int, name: str) -> EnvironmentRecord | None:
        stmt = (
            select(EnvironmentTable)
            .where(EnvironmentTable.owner_id == owner_id, EnvironmentTable.name == name)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_environment(row) if row is not None else None

    async def list_for_owner(self, owner_id: int) -> list[EnvironmentRecord]:
        """List an owner's environments, sorted by name."""
        stmt = (
            select(EnvironmentTable)
            .where(EnvironmentTable.owner_id == owner_id)
            .order_by(EnvironmentTable.name)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [_to_environment(row) for row in result.scalars().all()]

    async def count(self, owner_id: int) -> int:
        stmt = select(func.count()).select_from(EnvironmentTable).where(EnvironmentTable.owner_id == owner_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def update_description(self, owner_id: int, name: str, description: str) -> bool:
        stmt = (
            update(EnvironmentTable)
            .where(EnvironmentTable.owner_id == owner_id, EnvironmentTable.name == name)
            .values(description=description)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def rename(self, owner_id: int, old_name: str, new_name: str) -> bool:
        """Rename the environment record only; table identifiers are handled by the engine."""
        stmt = (
            update(EnvironmentTable)
            .where(EnvironmentTable.owner_id == owner_id, EnvironmentTable.name == old_name)
            .values(name=new_name)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
        except IntegrityError:
            raise ConflictError(f"Environment '{new_name}' already exists")
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def delete(self, owner_id: int, name: str) -> bool:
        stmt = delete(EnvironmentTable).where(EnvironmentTable.owner_id == owner_id, EnvironmentTable.name == name)
        result = await self._session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# MetadataRepository
# ---------------------------------------------------------------------------


class MetadataRepository:
    """Read/write primitives over the descriptor store and both table indexes.

    Parameters
    ----------
    session:
        Active database session.
    max_retries:
        Compare-and-swap attempts for an index rewrite before giving up
        with :class:`ConflictError`.
    """

    def __init__(self, session: AsyncSession, *, max_retries: int = 5) -> None:
        self._session = session
        self._max_retries = max_retries

    # -- Descriptors --------------------------------------------------------

    async def get_descriptor(self, table_id: str) -> TableDescriptor | None:
        stmt = (
            select(TableDescriptorTable)
            .where(TableDescriptorTable.table_id == table_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_descriptor(row) if row is not None else None

    async def list_descriptors(self, owner_id: int, environment_name: str | None = None) -> list[TableDescriptor]:
        """List an owner's descriptors, optionally restricted to one environment."""
        stmt = select(TableDescriptorTable).where(TableDescriptorTable.owner_id == owner_id)
        if environment_name is not None:
            stmt = stmt.where(TableDescriptorTable.environment_name == environment_name)
        stmt = stmt.order_by(TableDescriptorTable.table_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return [_to_descriptor(row) for row in result.scalars().all()]

    async def put_descriptor(self, descriptor: TableDescriptor) -> None:
        """Insert or overwrite the descriptor stored under ``descriptor.table_id``."""
        values = self._descriptor_values(descriptor)
        exists = await self._session.execute(
            select(TableDescriptorTable.table_id).where(TableDescriptorTable.table_id == descriptor.table_id)
        )
        if exists.scalar_one_or_none() is None:
            await self._session.execute(insert(TableDescriptorTable).values(table_id=descriptor.table_id, **values))
        else:
            await self._session.execute(
                update(TableDescriptorTable)
                .where(TableDescriptorTable.table_id == descriptor.table_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    async def replace_descriptor_id(self, old_id: str, descriptor: TableDescriptor) -> None:
        """Move the descriptor stored under *old_id* to ``descriptor.table_id``."""
        stmt = (
            update(TableDescriptorTable)
            .where(TableDescriptorTable.table_id == old_id)
            .values(table_id=descriptor.table_id, **self._descriptor_values(descriptor))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise NotFoundError(f"Table '{old_id}' does not exist")

    async def delete_descriptor(self, table_id: str) -> bool:
        stmt = delete(TableDescriptorTable).where(TableDescriptorTable.table_id == table_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    @staticmethod
    def _descriptor_values(descriptor: TableDescriptor) -> dict[str, Any]:
        return {
            "owner_id": descriptor.owner_id,
            "environment_name": descriptor.environment_name,
            "tablename": descriptor.tablename,
            "description": descriptor.description,
            "fields": json.dumps([field.to_json() for field in descriptor.fields]),
        }

    # -- Owner table index ----------------------------------------------------

    async def get_owner_index(self, owner_id: int) -> list[str] | None:
        """Return the owner's table identifiers, or ``None`` if the owner has no index."""
        stmt = select(OwnerTablesTable.tables).where(OwnerTablesTable.owner_id == owner_id)
        result = await self._session.execute(stmt)
        raw = result.scalar_one_or_none()
        return _load_list(raw) if raw is not None else None

    async def get_owner_count(self, owner_id: int) -> int | None:
        stmt = select(OwnerTablesTable.count).where(OwnerTablesTable.owner_id == owner_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def append_to_owner_index(self, owner_id: int, table_id: str) -> list[str]:
        return await self._rewrite_owner_index(owner_id, _appending(table_id))

    async def remove_from_owner_index(self, owner_id: int, table_id: str) -> list[str]:
        return await self._rewrite_owner_index(owner_id, _removing(table_id))

    async def swap_in_owner_index(self, owner_id: int, old_id: str, new_id: str) -> list[str]:
        return await self._rewrite_owner_index(owner_id, _swapping(old_id, new_id))

    async def _rewrite_owner_index(self, owner_id: int, mutate: ListMutation) -> list[str]:
        where = (OwnerTablesTable.owner_id == owner_id,)
        for attempt in range(1, self._max_retries + 1):
            stmt = select(OwnerTablesTable.tables, OwnerTablesTable.version).where(*where)
            row = (await self._session.execute(stmt)).one_or_none()
            if row is None:
                raise NotFoundError(f"User with id '{owner_id}' does not exist")
            updated = mutate(_load_list(row.tables))
            result = await self._session.execute(
                update(OwnerTablesTable)
                .where(*where, OwnerTablesTable.version == row.version)
                .values(tables=_dump_list(updated), count=len(updated), version=row.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:  # type: ignore[attr-defined]
                return updated
            logger.warning(
                "Owner index for %d changed concurrently (attempt %d/%d)", owner_id, attempt, self._max_retries
            )
        raise ConflictError(f"Table list of user '{owner_id}' is being modified concurrently; retry the request")

    # -- Environment table index ----------------------------------------------

    async def get_environment_index(self, owner_id: int, environment_name: str) -> list[str] | None:
        """Return the environment's table identifiers, or ``None`` if it does not exist."""
        stmt = select(EnvironmentTable.tables).where(
            EnvironmentTable.owner_id == owner_id,
            EnvironmentTable.name == environment_name,
        )
        result = await self._session.execute(stmt)
        raw = result.scalar_one_or_none()
        return _load_list(raw) if raw is not None else None

    async def append_to_environment_index(self, owner_id: int, environment_name: str, table_id: str) -> list[str]:
        return await self._rewrite_environment_index(owner_id, environment_name, _appending(table_id))

    async def remove_from_environment_index(self, owner_id: int, environment_name: str, table_id: str) -> list[str]:
        return await self._rewrite_environment_index(owner_id, environment_name, _removing(table_id))

    async def swap_in_environment_index(
        self, owner_id: int, environment_name: str, old_id: str, new_id: str
    ) -> list[str]:
        return await self._rewrite_environment_index(owner_id, environment_name, _swapping(old_id, new_id))

    async def _rewrite_environment_index(
        self, owner_id: int, environment_name: str, mutate: ListMutation
    ) -> list[str]:
        where = (EnvironmentTable.owner_id == owner_id, EnvironmentTable.name == environment_name)
        for attempt in range(1, self._max_retries + 1):
            stmt = select(EnvironmentTable.tables, EnvironmentTable.version).where(*where)
            row = (await self._session.execute(stmt)).one_or_none()
            if row is None:
                raise NotFoundError(f"Environment '{environment_name}' does not exist")
            updated = mutate(_load_list(row.tables))
            result = await self._session.execute(
                update(EnvironmentTable)
                .where(*where, EnvironmentTable.version == row.version)
                .values(tables=_dump_list(updated), version=row.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:  # type: ignore[attr-defined]
                return updated
            logger.warning(
                "Environment index for %d/%s changed concurrently (attempt %d/%d)",
                owner_id,
                environment_name,
                attempt,
                self._max_retries,
            )
        raise ConflictError(
            f"Table list of environment '{environment_name}' is being modified concurrently; retry the request"
        )
