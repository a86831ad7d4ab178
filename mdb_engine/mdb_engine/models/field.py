"""Field definition schema stored inside a table descriptor."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mdb_engine.types.field_types import FieldType, parse_field_type


class FieldDefinition(BaseModel):
    """One column's abstract type and constraints.

    Serialised with the camelCase aliases (``notNull``, ``autoDate``) used
    by the public API and by the stored descriptor JSON.  Structural rules
    (name syntax, type tag, attribute combinations) are checked by
    :func:`mdb_engine.types.validation.validate_field_definition`, not here,
    so that the engine can report them as typed validation errors.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(..., description="Column name, unique within the table.")
    type: str = Field(..., description="Field type tag, e.g. 'integer' or 'string_40'.")
    not_null: bool = Field(default=False, alias="notNull")
    default: Any = Field(default=None, description="Default value, type-checked against the tag.")
    auto_date: bool = Field(default=False, alias="autoDate")

    @property
    def field_type(self) -> FieldType | None:
        return parse_field_type(self.type)

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
