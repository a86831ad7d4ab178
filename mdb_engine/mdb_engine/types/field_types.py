"""Field type catalog and its physical column mapping.

A field type is a tagged union: one :class:`FieldKind` per catalog entry,
with ``STRING_N`` additionally carrying its bounded length.  Tags of the
``string_N`` family are recognised by pattern, never by catalog lookup.

Physical mapping::

    string        -> VARCHAR(255)
    string_max    -> VARCHAR(10485760)
    string_nolim  -> TEXT
    string_N      -> VARCHAR(N)
    integer       -> INTEGER (32-bit signed)
    float         -> FLOAT
    boolean       -> BOOLEAN
    date          -> DATE
    time          -> TIME
    datetime      -> TIMESTAMP
    url           -> VARCHAR(501)
    email         -> VARCHAR(320)
    phone         -> VARCHAR(20)
    array / json  -> TEXT (serialized JSON)
    emoji         -> VARCHAR(58)
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text, Time
from sqlalchemy.types import TypeEngine

INT32_MAX = 2_147_483_647
STRING_N_MAX = 10_485_760

_STRING_N_RE = re.compile(r"^string_(\d+)$")


class FieldKind(str, Enum):
    """Catalog of abstract field types."""

    STRING = "string"
    STRING_MAX = "string_max"
    STRING_NOLIM = "string_nolim"
    STRING_N = "string_n"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    ARRAY = "array"
    JSON = "json"
    EMOJI = "emoji"


TEMPORAL_KINDS: frozenset[FieldKind] = frozenset({FieldKind.DATE, FieldKind.TIME, FieldKind.DATETIME})

# Maximum value length per kind; ``STRING_N`` uses its own parameter.
_MAX_LENGTHS: dict[FieldKind, int] = {
    FieldKind.STRING: 255,
    FieldKind.STRING_MAX: STRING_N_MAX,
    FieldKind.URL: 501,
    FieldKind.EMAIL: 320,
    FieldKind.PHONE: 20,
    FieldKind.EMOJI: 58,
}


@dataclass(frozen=True)
class FieldType:
    """A parsed field type tag."""

    kind: FieldKind
    length: int | None = None

    @property
    def tag(self) -> str:
        if self.kind is FieldKind.STRING_N:
            return f"string_{self.length}"
        return self.kind.value

    @property
    def max_length(self) -> int | None:
        """Maximum accepted value length, or ``None`` when unbounded."""
        if self.kind is FieldKind.STRING_N:
            return self.length
        return _MAX_LENGTHS.get(self.kind)

    @property
    def is_temporal(self) -> bool:
        return self.kind in TEMPORAL_KINDS


def parse_field_type(tag: object) -> FieldType | None:
    """Parse a type tag into a :class:`FieldType`.

    Returns ``None`` when the tag is neither a catalog entry nor a
    ``string_N`` tag with ``1 <= N <= 10,485,760``.
    """
    if not isinstance(tag, str):
        return None
    match = _STRING_N_RE.match(tag)
    if match is not None:
        length = int(match.group(1))
        if not 1 <= length <= STRING_N_MAX:
            return None
        return FieldType(FieldKind.STRING_N, length)
    if tag == FieldKind.STRING_N.value:
        return None
    try:
        return FieldType(FieldKind(tag))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Physical column mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ColumnSpec:
    """Physical storage description of one field."""

    family: str
    length: int | None = None

    def sa_type(self) -> TypeEngine:
        """Return the SQLAlchemy type instance used in generated DDL."""
        factory = _SA_TYPES[self.family]
        return factory(self.length)


_SA_TYPES: dict[str, Callable[[int | None], TypeEngine]] = {
    "varchar": lambda length: String(length),
    "text": lambda _: Text(),
    "integer": lambda _: Integer(),
    "float": lambda _: Float(),
    "boolean": lambda _: Boolean(),
    "date": lambda _: Date(),
    "time": lambda _: Time(),
    "datetime": lambda _: DateTime(),
}


def _varchar(field_type: FieldType) -> ColumnSpec:
    return ColumnSpec("varchar", field_type.max_length)


_PHYSICAL_COLUMNS: dict[FieldKind, Callable[[FieldType], ColumnSpec]] = {
    FieldKind.STRING: _varchar,
    FieldKind.STRING_MAX: _varchar,
    FieldKind.STRING_NOLIM: lambda _: ColumnSpec("text"),
    FieldKind.STRING_N: _varchar,
    FieldKind.INTEGER: lambda _: ColumnSpec("integer"),
    FieldKind.FLOAT: lambda _: ColumnSpec("float"),
    FieldKind.BOOLEAN: lambda _: ColumnSpec("boolean"),
    FieldKind.DATE: lambda _: ColumnSpec("date"),
    FieldKind.TIME: lambda _: ColumnSpec("time"),
    FieldKind.DATETIME: lambda _: ColumnSpec("datetime"),
    FieldKind.URL: _varchar,
    FieldKind.EMAIL: _varchar,
    FieldKind.PHONE: _varchar,
    FieldKind.ARRAY: lambda _: ColumnSpec("text"),
    FieldKind.JSON: lambda _: ColumnSpec("text"),
    FieldKind.EMOJI: _varchar,
}

_unmapped = set(FieldKind) - set(_PHYSICAL_COLUMNS)
if _unmapped:
    raise RuntimeError(f"Field kinds without a physical column mapping: {sorted(k.value for k in _unmapped)}")


def physical_column(field_type: FieldType) -> ColumnSpec:
    """Return the physical column spec for *field_type*."""
    return _PHYSICAL_COLUMNS[field_type.kind](field_type)
