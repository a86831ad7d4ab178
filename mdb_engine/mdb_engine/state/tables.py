"""SQLAlchemy 2.0 ORM table definitions for the MDB metadata stores.

Three independently written stores describe which tenant tables exist:

* ``table_descriptors`` -- authoritative schema-as-data, one row per table.
* ``owner_tables``      -- per-owner list and count of table identifiers.
* ``environments``      -- per-environment list of table identifiers.

The two list columns hold serialized JSON text and carry a ``version``
counter so rewrites can be made conditional (compare-and-swap).
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all metadata tables."""


# ---------------------------------------------------------------------------
# Users (owners)
# ---------------------------------------------------------------------------


class UserTable(Base):
    """Owner accounts."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


# ---------------------------------------------------------------------------
# Owner table index
# ---------------------------------------------------------------------------


class OwnerTablesTable(Base):
    """Denormalized list and count of table identifiers per owner."""

    __tablename__ = "owner_tables"

    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    tables: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Environments (and their table index)
# ---------------------------------------------------------------------------


class EnvironmentTable(Base):
    """Named grouping of tables under one owner."""

    __tablename__ = "environments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(25), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tables: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_environments_owner_name"),
        Index("ix_environments_owner", "owner_id"),
    )


# ---------------------------------------------------------------------------
# Table descriptors
# ---------------------------------------------------------------------------


class TableDescriptorTable(Base):
    """Schema-as-data record for one tenant table, keyed by its physical identifier."""

    __tablename__ = "table_descriptors"

    table_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    environment_name: Mapped[str] = mapped_column(String(25), nullable=False)
    tablename: Mapped[str] = mapped_column(String(31), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    fields: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (Index("ix_table_descriptors_owner_env", "owner_id", "environment_name"),)
