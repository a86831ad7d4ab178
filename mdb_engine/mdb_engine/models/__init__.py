"""Domain models for the MDB core engine."""

from mdb_engine.models.field import FieldDefinition
from mdb_engine.models.table import EnvironmentRecord, TableDescriptor, UserRecord

__all__ = [
    "EnvironmentRecord",
    "FieldDefinition",
    "TableDescriptor",
    "UserRecord",
]
