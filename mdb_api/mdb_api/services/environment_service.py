"""Environment management for an owner."""

from __future__ import annotations

import logging
from typing import Any

from mdb_engine.config import Settings
from mdb_engine.errors import NotFoundError, ValidationError
from mdb_engine.identifiers import validate_description, validate_environment_name
from mdb_engine.schema import SchemaEngine
from mdb_engine.state import EnvironmentRepository, UserRepository
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class EnvironmentService:
    """Environment CRUD on top of the environment store.

    Renames and deletes go through :class:`SchemaEngine` because they
    re-derive or drop every table in the environment.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._repo = EnvironmentRepository(session)
        self._users = UserRepository(session)
        self._engine = SchemaEngine(session, settings)

    async def _require_owner(self, owner_id: int) -> None:
        if not await self._users.exists(owner_id):
            raise NotFoundError(f"User with id '{owner_id}' does not exist")

    async def create_environment(self, owner_id: int, name: str, description: str = "") -> dict[str, Any]:
        """Create an empty environment.

        Raises
        ------
        ValidationError
            If the name or description is malformed.
        NotFoundError
            If the owner does not exist.
        ConflictError
            If the owner already has an environment called *name*.
        """
        for reason in (validate_environment_name(name), validate_description(description)):
            if reason is not None:
                raise ValidationError(reason)
        await self._require_owner(owner_id)
        environment = await self._repo.create(owner_id, name, description)
        logger.info("Created environment %d/%s", owner_id, name)
        return environment.to_json()

    async def get_environment(self, owner_id: int, name: str) -> dict[str, Any]:
        environment = await self._repo.get(owner_id, name)
        if environment is None:
            raise NotFoundError(f"Environment '{name}' does not exist")
        return environment.to_json()

    async def list_environments(self, owner_id: int) -> list[dict[str, Any]]:
        await self._require_owner(owner_id)
        return [environment.to_json() for environment in await self._repo.list_for_owner(owner_id)]

    async def count_environments(self, owner_id: int) -> int:
        await self._require_owner(owner_id)
        return await self._repo.count(owner_id)

    async def update_environment(
        self,
        owner_id: int,
        name: str,
        *,
        description: str | None = None,
        new_name: str | None = None,
    ) -> dict[str, Any]:
        """Update the description and/or rename the environment.

        A rename re-derives the identifier of every table in the
        environment, so it may fail with any error
        :meth:`SchemaEngine.rename_environment` raises.
        """
        if await self._repo.get(owner_id, name) is None:
            raise NotFoundError(f"Environment '{name}' does not exist")
        if description is not None:
            reason = validate_description(description)
            if reason is not None:
                raise ValidationError(reason)
            await self._repo.update_description(owner_id, name, description)
        if new_name is not None and new_name != name:
            environment = await self._engine.rename_environment(owner_id, name, new_name)
            return environment.to_json()
        return await self.get_environment(owner_id, name)

    async def delete_environment(self, owner_id: int, name: str) -> None:
        """Delete the environment and drop every table it holds."""
        await self._engine.drop_environment(owner_id, name)
