"""Schema mutation engine.

Orchestrates every change to a tenant table across the four places that
describe it: the physical table, its descriptor, the owner table index and
the environment table index.

Requested changes are validated in full before the first write, so a
well-formed request can only fail part-way through because a store
rejected a statement.  When that happens after at least one step has been
applied, the failure is reported as a :class:`PartialFailureError` listing
the completed steps.  All steps share the caller's session; rolling it back
discards every applied step on stores with transactional DDL.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mdb_engine.config import Settings, load_settings
from mdb_engine.errors import (
    ConflictError,
    EngineError,
    NotFoundError,
    PartialFailureError,
    StoreError,
    ValidationError,
)
from mdb_engine.identifiers import (
    derive_table_id,
    validate_description,
    validate_environment_name,
    validate_field_name,
    validate_identifier_length,
    validate_table_name,
)
from mdb_engine.models import EnvironmentRecord, FieldDefinition, TableDescriptor
from mdb_engine.schema.ddl import PhysicalStore
from mdb_engine.state.repository import EnvironmentRepository, MetadataRepository
from mdb_engine.types import validate_field_definition

logger = logging.getLogger(__name__)


class TableChanges(BaseModel):
    """A batch of changes to one table, applied in field order."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    description: str | None = None
    remove_fields: list[str] = Field(default_factory=list, alias="removeFields")
    add_fields: list[FieldDefinition] = Field(default_factory=list, alias="addFields")
    rename_fields: dict[str, str] = Field(default_factory=dict, alias="renameFields")
    new_name: str | None = Field(default=None, alias="newName")

    def is_empty(self) -> bool:
        return (
            self.description is None
            and not self.remove_fields
            and not self.add_fields
            and not self.rename_fields
            and self.new_name is None
        )


class _StepLog:
    """Records the applied steps of one mutation for failure reporting."""

    def __init__(self, operation: str, table_id: str) -> None:
        self.operation = operation
        self.table_id = table_id
        self.steps: list[str] = []

    def done(self, step: str) -> None:
        self.steps.append(step)
        logger.debug("%s %s: %s", self.operation, self.table_id, step)

    def __enter__(self) -> _StepLog:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: object) -> bool:
        if not isinstance(exc, (EngineError, SQLAlchemyError)):
            return False
        error = self._failure(exc)
        if error is exc:
            return False
        raise error from exc

    def _failure(self, exc: EngineError | SQLAlchemyError) -> EngineError:
        if isinstance(exc, EngineError):
            error = exc
        else:
            error = StoreError(f"Failed to {self.operation} on table '{self.table_id}': {exc}", table=self.table_id)
        if not self.steps:
            return error
        logger.error(
            "%s of %s stopped after %s: %s", self.operation, self.table_id, ", ".join(self.steps), error.message
        )
        return PartialFailureError(
            f"Failed to {self.operation} '{self.table_id}' after completing "
            f"{', '.join(self.steps)}: {error.message}",
            completed_steps=self.steps,
        )


def _check_fields(fields: Sequence[FieldDefinition], existing: Iterable[str] = ()) -> None:
    """Validate new field definitions against each other and the existing names."""
    seen = set(existing)
    for field in fields:
        issue = validate_field_definition(field)
        if issue is not None:
            raise ValidationError(issue.message, field=field.name)
        if field.name in seen:
            raise ConflictError(f"Field '{field.name}' already exists")
        seen.add(field.name)


class SchemaEngine:
    """Create, alter and delete tenant tables, keeping all metadata stores in step.

    Parameters
    ----------
    session:
        Session of the current request.  The engine never commits; the
        caller commits on success and rolls back on any exception.
    settings:
        Engine settings; loaded from the environment when omitted.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._settings = settings or load_settings()
        self._metadata = MetadataRepository(session, max_retries=self._settings.index_update_retries)
        self._environments = EnvironmentRepository(session)
        self._store = PhysicalStore(session)

    @property
    def metadata(self) -> MetadataRepository:
        return self._metadata

    # -- helpers --------------------------------------------------------------

    def _derive(self, owner_id: int, environment_name: str, tablename: str) -> str:
        table_id = derive_table_id(owner_id, environment_name, tablename)
        reason = validate_identifier_length(table_id, self._settings.max_identifier_length)
        if reason is not None:
            raise ValidationError(reason)
        return table_id

    async def _require_descriptor(self, table_id: str) -> TableDescriptor:
        descriptor = await self._metadata.get_descriptor(table_id)
        if descriptor is None:
            raise NotFoundError(f"Table '{table_id}' does not exist")
        return descriptor

    async def _require_owner_index(self, owner_id: int) -> list[str]:
        index = await self._metadata.get_owner_index(owner_id)
        if index is None:
            raise NotFoundError(f"User with id '{owner_id}' does not exist")
        return index

    async def _identifier_taken(self, table_id: str) -> ConflictError:
        """Conflict naming the table that already holds *table_id*."""
        holder = await self._metadata.get_descriptor(table_id)
        if holder is None:
            return ConflictError(f"Table identifier '{table_id}' is already in use")
        return ConflictError(
            f"Table identifier '{table_id}' is already used by table '{holder.tablename}' "
            f"in environment '{holder.environment_name}'",
        )

    # -- create ---------------------------------------------------------------

    async def create_table(
        self,
        owner_id: int,
        environment_name: str,
        tablename: str,
        description: str = "",
        fields: Sequence[FieldDefinition] = (),
    ) -> TableDescriptor:
        """Create a tenant table and register it in all three metadata stores.

        Raises
        ------
        ValidationError
            If a name, the description or a field definition is malformed.
        NotFoundError
            If the owner or environment does not exist.
        ConflictError
            If the table already exists or two fields share a name.
        """
        for reason in (
            validate_environment_name(environment_name),
            validate_table_name(tablename),
            validate_description(description),
        ):
            if reason is not None:
                raise ValidationError(reason)
        _check_fields(fields)

        if await self._environments.get(owner_id, environment_name) is None:
            raise NotFoundError(f"Environment '{environment_name}' does not exist")
        table_id = self._derive(owner_id, environment_name, tablename)
        if table_id in await self._require_owner_index(owner_id):
            raise await self._identifier_taken(table_id)

        descriptor = TableDescriptor(
            table_id=table_id,
            owner_id=owner_id,
            environment_name=environment_name,
            tablename=tablename,
            description=description,
            fields=list(fields),
        )
        with _StepLog("create table", table_id) as log:
            await self._metadata.append_to_owner_index(owner_id, table_id)
            log.done("owner index")
            await self._metadata.put_descriptor(descriptor)
            log.done("descriptor")
            await self._metadata.append_to_environment_index(owner_id, environment_name, table_id)
            log.done("environment index")
            await self._store.create_table(table_id, descriptor.fields)

        logger.info("Created table %s with %d fields", table_id, len(descriptor.fields))
        return descriptor

    # -- delete ---------------------------------------------------------------

    async def delete_table(self, table_id: str) -> None:
        """Drop a tenant table and remove it from every metadata store.

        Raises
        ------
        NotFoundError
            If no descriptor exists for *table_id*.
        """
        descriptor = await self._require_descriptor(table_id)
        with _StepLog("delete table", table_id) as log:
            await self._metadata.delete_descriptor(table_id)
            log.done("descriptor")
            await self._metadata.remove_from_owner_index(descriptor.owner_id, table_id)
            log.done("owner index")
            await self._metadata.remove_from_environment_index(
                descriptor.owner_id, descriptor.environment_name, table_id
            )
            log.done("environment index")
            await self._store.drop_table(table_id)
        logger.info("Deleted table %s", table_id)

    # -- alter ----------------------------------------------------------------

    async def _plan(self, descriptor: TableDescriptor, changes: TableChanges) -> str | None:
        """Validate *changes* against *descriptor*; return the new table id if renamed."""
        if changes.description is not None:
            reason = validate_description(changes.description)
            if reason is not None:
                raise ValidationError(reason)

        names = descriptor.field_names()
        for name in changes.remove_fields:
            if name not in names:
                raise NotFoundError(f"Field '{name}' does not exist in table '{descriptor.tablename}'")
            names.remove(name)

        _check_fields(changes.add_fields, existing=names)
        added = {field.name for field in changes.add_fields}
        names.extend(added)

        for old_name, new_name in changes.rename_fields.items():
            if old_name in added:
                raise ValidationError(
                    f"Field '{old_name}' is added in this request and cannot be renamed in the same request",
                    field=old_name,
                )
            if old_name not in names:
                raise NotFoundError(f"Field '{old_name}' does not exist in table '{descriptor.tablename}'")
            reason = validate_field_name(new_name)
            if reason is not None:
                raise ValidationError(reason, field=new_name)
            if old_name == new_name:
                raise ValidationError(f"Field '{old_name}' already has that name", field=old_name)
            if new_name in names:
                raise ConflictError(f"Field '{new_name}' already exists")
            names[names.index(old_name)] = new_name

        if changes.new_name is None or changes.new_name == descriptor.tablename:
            return None
        reason = validate_table_name(changes.new_name)
        if reason is not None:
            raise ValidationError(reason)
        new_id = self._derive(descriptor.owner_id, descriptor.environment_name, changes.new_name)
        if new_id in await self._require_owner_index(descriptor.owner_id):
            raise await self._identifier_taken(new_id)
        return new_id

    async def alter_table(self, table_id: str, changes: TableChanges) -> TableDescriptor:
        """Apply *changes* to an existing table and return the updated descriptor.

        Order of application: description, field removals, field additions,
        field renames, table rename.  Each physical change is applied before
        the descriptor is rewritten to reflect it.
        """
        descriptor = await self._require_descriptor(table_id)
        if changes.is_empty():
            return descriptor
        new_id = await self._plan(descriptor, changes)
        with _StepLog("alter table", table_id) as log:
            if changes.description is not None and changes.description != descriptor.description:
                descriptor.description = changes.description
                await self._metadata.put_descriptor(descriptor)
                log.done("description")

            for name in changes.remove_fields:
                await self._store.drop_column(table_id, name)
                log.done(f"drop column {name}")
                descriptor.fields = [field for field in descriptor.fields if field.name != name]
                await self._metadata.put_descriptor(descriptor)
                log.done(f"descriptor without {name}")

            for field in changes.add_fields:
                await self._store.add_column(table_id, field)
                log.done(f"add column {field.name}")
                descriptor.fields.append(field)
                await self._metadata.put_descriptor(descriptor)
                log.done(f"descriptor with {field.name}")

            for old_name, new_name in changes.rename_fields.items():
                await self._store.rename_column(table_id, old_name, new_name)
                log.done(f"rename column {old_name}")
                descriptor.fields = [
                    field.model_copy(update={"name": new_name}) if field.name == old_name else field
                    for field in descriptor.fields
                ]
                await self._metadata.put_descriptor(descriptor)
                log.done(f"descriptor with {new_name}")

            if new_id is not None and changes.new_name is not None:
                descriptor = await self._rename(descriptor, changes.new_name, new_id, log)

        logger.info("Altered table %s (%d steps)", descriptor.table_id, len(log.steps))
        return descriptor

    async def _rename(
        self,
        descriptor: TableDescriptor,
        tablename: str,
        new_id: str,
        log: _StepLog,
        *,
        environment_name: str | None = None,
        update_environment_index: bool = True,
    ) -> TableDescriptor:
        old_id = descriptor.table_id
        renamed = descriptor.model_copy(
            update={
                "table_id": new_id,
                "tablename": tablename,
                "environment_name": environment_name or descriptor.environment_name,
            }
        )
        await self._store.rename_table(old_id, new_id)
        log.done(f"rename table {old_id}")
        await self._metadata.replace_descriptor_id(old_id, renamed)
        log.done(f"descriptor {old_id}")
        await self._metadata.swap_in_owner_index(descriptor.owner_id, old_id, new_id)
        log.done(f"owner index {old_id}")
        if update_environment_index:
            await self._metadata.swap_in_environment_index(
                descriptor.owner_id, renamed.environment_name, old_id, new_id
            )
            log.done(f"environment index {old_id}")
        return renamed

    # -- environment-wide -----------------------------------------------------

    async def rename_environment(self, owner_id: int, old_name: str, new_name: str) -> EnvironmentRecord:
        """Rename an environment, re-deriving and renaming every table it owns.

        Raises
        ------
        ValidationError
            If *new_name* is malformed or a re-derived identifier is too long.
        NotFoundError
            If the environment does not exist.
        ConflictError
            If *new_name* is already taken by another of the owner's environments.
        """
        reason = validate_environment_name(new_name)
        if reason is not None:
            raise ValidationError(reason)
        environment = await self._environments.get(owner_id, old_name)
        if environment is None:
            raise NotFoundError(f"Environment '{old_name}' does not exist")
        if new_name == old_name:
            return environment
        if await self._environments.get(owner_id, new_name) is not None:
            raise ConflictError(f"Environment '{new_name}' already exists")

        await self._environments.rename(owner_id, old_name, new_name)
        await self.rename_environment_tables(owner_id, old_name, new_name, environment.tables)
        renamed = await self._environments.get(owner_id, new_name)
        assert renamed is not None
        logger.info("Renamed environment %d/%s -> %s", owner_id, old_name, new_name)
        return renamed

    async def rename_environment_tables(
        self,
        owner_id: int,
        old_name: str,
        new_name: str,
        table_ids: Sequence[str],
    ) -> list[str]:
        """Move every table of *old_name* under the already-renamed environment *new_name*.

        Returns the new identifiers in the original order.
        """
        descriptors = [await self._require_descriptor(table_id) for table_id in table_ids]
        targets = [self._derive(owner_id, new_name, d.tablename) for d in descriptors]
        owner_index = set(await self._require_owner_index(owner_id))
        for target in targets:
            if target in owner_index:
                raise await self._identifier_taken(target)

        new_ids: list[str] = []
        for descriptor, new_id in zip(descriptors, targets):
            with _StepLog("rename table", descriptor.table_id) as log:
                await self._rename(
                    descriptor,
                    descriptor.tablename,
                    new_id,
                    log,
                    environment_name=new_name,
                    update_environment_index=False,
                )
                await self._metadata.swap_in_environment_index(owner_id, new_name, descriptor.table_id, new_id)
            new_ids.append(new_id)
        return new_ids

    async def drop_environment_tables(self, owner_id: int, environment_name: str) -> list[str]:
        """Delete every table of an environment; returns the dropped identifiers."""
        table_ids = await self._metadata.get_environment_index(owner_id, environment_name)
        if table_ids is None:
            raise NotFoundError(f"Environment '{environment_name}' does not exist")
        for table_id in table_ids:
            await self.delete_table(table_id)
        return table_ids

    async def drop_environment(self, owner_id: int, environment_name: str) -> None:
        """Delete an environment together with all of its tables."""
        await self.drop_environment_tables(owner_id, environment_name)
        await self._environments.delete(owner_id, environment_name)
        logger.info("Deleted environment %d/%s", owner_id, environment_name)
