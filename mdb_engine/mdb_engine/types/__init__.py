"""Field type system: catalog, physical mapping, validation and coercion."""

from mdb_engine.types.coercion import from_storage, to_storage
from mdb_engine.types.field_types import (
    ColumnSpec,
    FieldKind,
    FieldType,
    parse_field_type,
    physical_column,
)
from mdb_engine.types.validation import (
    IssueCode,
    ValueIssue,
    validate_default,
    validate_field_definition,
    validate_runtime_value,
)

__all__ = [
    "ColumnSpec",
    "FieldKind",
    "FieldType",
    "IssueCode",
    "ValueIssue",
    "from_storage",
    "parse_field_type",
    "physical_column",
    "to_storage",
    "validate_default",
    "validate_field_definition",
    "validate_runtime_value",
]
