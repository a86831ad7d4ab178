"""Validation and coercion of record payloads against a table's field schema."""

from __future__ import annotations

from typing import Any

from mdb_engine.errors import ValidationError
from mdb_engine.identifiers import RESERVED_COLUMN
from mdb_engine.models import TableDescriptor
from mdb_engine.types import to_storage, validate_runtime_value


class RecordValidator:
    """Turn a client payload into a mapping ready to bind into DML.

    Validation is first-fail: the first offending field raises
    :class:`ValidationError` naming it.
    """

    def validate(
        self,
        descriptor: TableDescriptor,
        payload: dict[str, Any],
        *,
        partial: bool = False,
    ) -> dict[str, Any]:
        """Validate *payload* and return its storage-form values.

        Parameters
        ----------
        descriptor:
            Schema of the target table.
        payload:
            Field name to logical value.
        partial:
            ``True`` for updates: only the supplied fields are checked.
            ``False`` for inserts: required fields must be present and
            missing fields with a default are filled in.
        """
        values: dict[str, Any] = {}
        for name, value in payload.items():
            if name == RESERVED_COLUMN:
                raise ValidationError(f"Field '{RESERVED_COLUMN}' is assigned by the store", field=name)
            field = descriptor.get_field(name)
            if field is None:
                raise ValidationError(f"Field '{name}' does not exist in table '{descriptor.tablename}'", field=name)
            field_type = field.field_type
            if field_type is None:
                raise ValidationError(f"Field '{name}' has an invalid type '{field.type}'", field=name)
            if value is None:
                if field.not_null:
                    raise ValidationError(f"Field '{name}' cannot be null", field=name)
                values[name] = None
                continue
            issue = validate_runtime_value(value, field_type)
            if issue is not None:
                raise ValidationError(f"Field '{name}': {issue.message}", field=name)
            values[name] = to_storage(value, field_type)

        if partial:
            return values

        for field in descriptor.fields:
            if field.name in values or field.auto_date:
                continue
            field_type = field.field_type
            if field.has_default and field_type is not None:
                values[field.name] = to_storage(field.default, field_type)
            elif field.not_null:
                raise ValidationError(f"Field '{field.name}' is required", field=field.name)
        return values
