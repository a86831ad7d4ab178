"""Owner account management."""

from __future__ import annotations

import logging
from typing import Any

import bcrypt
from mdb_engine.config import Settings
from mdb_engine.errors import NotFoundError, ValidationError
from mdb_engine.schema import SchemaEngine
from mdb_engine.state import EnvironmentRepository, UserRepository
from mdb_engine.types.field_types import parse_field_type
from mdb_engine.types.validation import validate_runtime_value
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_EMAIL = parse_field_type("email")


def _hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def _check_email(email: str) -> None:
    assert _EMAIL is not None
    issue = validate_runtime_value(email, _EMAIL)
    if issue is not None:
        raise ValidationError(f"Invalid email: {issue.message}", field="email")


class UserService:
    """Create, read, update and delete owner accounts.

    Deleting an owner drops every environment (and therefore every tenant
    table) it owns before the account row goes.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings
        self._users = UserRepository(session)

    async def create_user(self, username: str, email: str, password: str) -> dict[str, Any]:
        _check_email(email)
        user = await self._users.create(username, email, _hash_password(password))
        logger.info("Created user %d", user.id)
        return user.to_json()

    async def get_user(self, user_id: int) -> dict[str, Any]:
        user = await self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User with id '{user_id}' does not exist")
        return user.to_json()

    async def update_user(
        self,
        user_id: int,
        *,
        username: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> dict[str, Any]:
        """Apply the given changes; ``None`` leaves a column untouched."""
        if email is not None:
            _check_email(email)
        user = await self._users.update(
            user_id,
            username=username,
            email=email,
            password_hash=_hash_password(password) if password is not None else None,
        )
        if user is None:
            raise NotFoundError(f"User with id '{user_id}' does not exist")
        return user.to_json()

    async def delete_user(self, user_id: int) -> None:
        """Delete an owner with all of its environments and tables.

        Raises
        ------
        NotFoundError
            If the user does not exist.
        """
        if not await self._users.exists(user_id):
            raise NotFoundError(f"User with id '{user_id}' does not exist")

        engine = SchemaEngine(self._session, self._settings)
        for environment in await EnvironmentRepository(self._session).list_for_owner(user_id):
            await engine.drop_environment(user_id, environment.name)
        await self._users.delete(user_id)
        logger.info("Deleted user %d", user_id)
