"""Persistence layer: engine/session wiring, ORM tables and repositories."""

from mdb_engine.state.database import create_metadata_tables, get_engine, get_session
from mdb_engine.state.repository import EnvironmentRepository, MetadataRepository, UserRepository

__all__ = [
    "EnvironmentRepository",
    "MetadataRepository",
    "UserRepository",
    "create_metadata_tables",
    "get_engine",
    "get_session",
]
