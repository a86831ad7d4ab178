"""Conversion between logical record values and their stored form."""

from __future__ import annotations

import json
from datetime import date, datetime, time
from typing import Any

from mdb_engine.types.emoji import resolve_emoji
from mdb_engine.types.field_types import FieldKind, FieldType


def to_storage(value: Any, field_type: FieldType) -> Any:
    """Convert an already-validated logical value into a bindable storage value."""
    if value is None:
        return None
    kind = field_type.kind
    if kind in (FieldKind.ARRAY, FieldKind.JSON):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    if kind is FieldKind.DATE and isinstance(value, str):
        return date.fromisoformat(value)
    if kind is FieldKind.TIME and isinstance(value, str):
        return time.fromisoformat(value)
    if kind is FieldKind.DATETIME and isinstance(value, str):
        return datetime.fromisoformat(value.replace(" ", "T"))
    if kind is FieldKind.FLOAT:
        return float(value)
    return value


def from_storage(value: Any, field_type: FieldType) -> Any:
    """Interpret a stored value back into its logical form for the read path."""
    if value is None:
        return None
    kind = field_type.kind
    if kind in (FieldKind.ARRAY, FieldKind.JSON):
        return json.loads(value) if isinstance(value, str) else value
    if kind is FieldKind.EMOJI:
        glyph = resolve_emoji(value)
        return glyph if glyph is not None else value
    if kind is FieldKind.DATETIME and isinstance(value, datetime):
        return value.isoformat(sep=" ", timespec="seconds")
    if kind in (FieldKind.DATE, FieldKind.TIME) and isinstance(value, (date, time)):
        if isinstance(value, time):
            return value.isoformat(timespec="seconds")
        return value.isoformat()
    if kind is FieldKind.BOOLEAN:
        return bool(value)
    if kind is FieldKind.FLOAT:
        return float(value)
    return value
