"""Table descriptor and environment value objects."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from mdb_engine.models.field import FieldDefinition


class TableDescriptor(BaseModel):
    """Authoritative schema-as-data record for one tenant table."""

    table_id: str = Field(..., description="Derived physical identifier.")
    owner_id: int
    environment_name: str
    tablename: str
    description: str = ""
    fields: list[FieldDefinition] = Field(default_factory=list)

    def get_field(self, name: str) -> FieldDefinition | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def field_names(self) -> list[str]:
        return [field.name for field in self.fields]

    def to_json(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "table_id": self.table_id,
            "environment_name": self.environment_name,
            "tablename": self.tablename,
            "description": self.description,
            "fields": [field.to_json() for field in self.fields],
        }


class EnvironmentRecord(BaseModel):
    """An owner's named grouping of tables."""

    owner_id: int
    name: str
    description: str = ""
    tables: list[str] = Field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump()


class UserRecord(BaseModel):
    """Public view of an owner account (the password hash is never exposed)."""

    id: int
    username: str
    email: str

    def to_json(self) -> dict[str, Any]:
        return self.model_dump()
