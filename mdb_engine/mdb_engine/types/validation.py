"""Default-value, runtime-value and field-definition validation.

Validators return ``None`` on success or a :class:`ValueIssue` describing
the first problem found.  The same rules back the DDL the engine generates
and the record payloads the data API accepts, so both stay consistent.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from datetime import date, datetime, time
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple

from mdb_engine.identifiers import validate_field_name
from mdb_engine.types.emoji import EMOJI_GLYPHS, emoji_name
from mdb_engine.types.field_types import INT32_MAX, FieldKind, FieldType, parse_field_type

if TYPE_CHECKING:
    from mdb_engine.models.field import FieldDefinition


class IssueCode(str, Enum):
    """Typed reasons a value or definition is rejected."""

    WRONG_TYPE = "wrong_type"
    TOO_LONG = "too_long"
    OUT_OF_RANGE = "out_of_range"
    INVALID_FORMAT = "invalid_format"
    INVALID_COMBINATION = "invalid_combination"
    UNKNOWN_TYPE = "unknown_type"
    INVALID_NAME = "invalid_name"


class ValueIssue(NamedTuple):
    code: IssueCode
    message: str


_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}:\d{2}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}$")
_PHONE_RE = re.compile(r"^\d{3}[-.]\d{3}[-.]\d{4}$")
_EMAIL_RE = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)
# Scheme is optional; host is a dotted domain, ``localhost`` or an IPv4 address.
_URL_RE = re.compile(
    r"^(?:[A-Za-z][A-Za-z0-9+.-]*://)?"
    r"(?:[^\s:@/]+(?::[^\s@/]*)?@)?"
    r"(?:localhost"
    r"|(?:\d{1,3}\.){3}\d{1,3}"
    r"|(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63})"
    r"(?::\d{1,5})?"
    r"(?:[/?#]\S*)?$"
)


def _type_name(value: Any) -> str:
    return type(value).__name__


# ---------------------------------------------------------------------------
# Per-kind runtime checks
# ---------------------------------------------------------------------------


def _check_string(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, str):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a string, got {_type_name(value)}")
    limit = field_type.max_length
    if limit is not None and len(value) > limit:
        return ValueIssue(IssueCode.TOO_LONG, f"value exceeds the maximum length of {limit} ({len(value)} characters)")
    return None


def _check_pattern(pattern: re.Pattern[str], label: str) -> Callable[[Any, FieldType], ValueIssue | None]:
    def check(value: Any, field_type: FieldType) -> ValueIssue | None:
        issue = _check_string(value, field_type)
        if issue is not None:
            return issue
        if not pattern.match(value):
            return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a valid {label}")
        return None

    return check


def _check_integer(value: Any, field_type: FieldType) -> ValueIssue | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected an integer, got {_type_name(value)}")
    if abs(value) > INT32_MAX:
        return ValueIssue(IssueCode.OUT_OF_RANGE, f"{value} is outside the range -{INT32_MAX}..{INT32_MAX}")
    return None


def _check_float(value: Any, field_type: FieldType) -> ValueIssue | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a number, got {_type_name(value)}")
    if isinstance(value, float) and not math.isfinite(value):
        return ValueIssue(IssueCode.INVALID_FORMAT, f"{value} is not a finite number")
    if abs(value) > INT32_MAX:
        return ValueIssue(IssueCode.OUT_OF_RANGE, f"{value} is outside the range -{INT32_MAX}..{INT32_MAX}")
    return None


def _check_boolean(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, bool):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a boolean, got {_type_name(value)}")
    return None


def _check_date(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, str):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a date string, got {_type_name(value)}")
    if not _DATE_RE.match(value):
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a date in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError:
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a valid calendar date")
    return None


def _check_time(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, str):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a time string, got {_type_name(value)}")
    if not _TIME_RE.match(value):
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a time in HH:MM:SS format")
    try:
        time.fromisoformat(value)
    except ValueError:
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a valid time of day")
    return None


def _check_datetime(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, str):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a datetime string, got {_type_name(value)}")
    if not _DATETIME_RE.match(value):
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a datetime in 'YYYY-MM-DD HH:MM:SS' format")
    try:
        datetime.fromisoformat(value.replace(" ", "T"))
    except ValueError:
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a valid datetime")
    return None


def _check_array(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, list):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected an array, got {_type_name(value)}")
    return None


def _check_json(value: Any, field_type: FieldType) -> ValueIssue | None:
    if not isinstance(value, dict):
        return ValueIssue(IssueCode.WRONG_TYPE, f"expected a JSON object, got {_type_name(value)}")
    return None


def _check_emoji(value: Any, field_type: FieldType) -> ValueIssue | None:
    issue = _check_string(value, field_type)
    if issue is not None:
        return issue
    name = emoji_name(value)
    if name is None:
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not an emoji token of the form ':name:'")
    if name not in EMOJI_GLYPHS:
        return ValueIssue(IssueCode.INVALID_FORMAT, f"'{value}' is not a known emoji")
    return None


_RUNTIME_CHECKS: dict[FieldKind, Callable[[Any, FieldType], ValueIssue | None]] = {
    FieldKind.STRING: _check_string,
    FieldKind.STRING_MAX: _check_string,
    FieldKind.STRING_NOLIM: _check_string,
    FieldKind.STRING_N: _check_string,
    FieldKind.INTEGER: _check_integer,
    FieldKind.FLOAT: _check_float,
    FieldKind.BOOLEAN: _check_boolean,
    FieldKind.DATE: _check_date,
    FieldKind.TIME: _check_time,
    FieldKind.DATETIME: _check_datetime,
    FieldKind.URL: _check_pattern(_URL_RE, "URL"),
    FieldKind.EMAIL: _check_pattern(_EMAIL_RE, "email address"),
    FieldKind.PHONE: _check_pattern(_PHONE_RE, "phone number (DDD-DDD-DDDD)"),
    FieldKind.ARRAY: _check_array,
    FieldKind.JSON: _check_json,
    FieldKind.EMOJI: _check_emoji,
}

_unchecked = set(FieldKind) - set(_RUNTIME_CHECKS)
if _unchecked:
    raise RuntimeError(f"Field kinds without a runtime check: {sorted(k.value for k in _unchecked)}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_runtime_value(value: Any, field_type: FieldType) -> ValueIssue | None:
    """Check a record value against its field type.  ``None`` is not accepted."""
    if value is None:
        return ValueIssue(IssueCode.WRONG_TYPE, "value cannot be null")
    return _RUNTIME_CHECKS[field_type.kind](value, field_type)


def validate_default(value: Any, field_type: FieldType) -> ValueIssue | None:
    """Check a declared default against its field type."""
    issue = validate_runtime_value(value, field_type)
    if issue is None:
        return None
    return ValueIssue(issue.code, f"invalid default: {issue.message}")


def validate_field_definition(field: FieldDefinition) -> ValueIssue | None:
    """Validate one field definition as it would be accepted at create time."""
    reason = validate_field_name(field.name)
    if reason is not None:
        return ValueIssue(IssueCode.INVALID_NAME, reason)

    field_type = parse_field_type(field.type)
    if field_type is None:
        return ValueIssue(IssueCode.UNKNOWN_TYPE, f"Field '{field.name}' has an invalid type '{field.type}'")

    if field.auto_date:
        if not field_type.is_temporal:
            return ValueIssue(
                IssueCode.INVALID_COMBINATION,
                f"Field '{field.name}': autoDate is only allowed on date, time and datetime fields",
            )
        if field.has_default or field.not_null:
            return ValueIssue(
                IssueCode.INVALID_COMBINATION,
                f"Field '{field.name}': autoDate cannot be combined with default or notNull",
            )

    if field.has_default:
        issue = validate_default(field.default, field_type)
        if issue is not None:
            return ValueIssue(issue.code, f"Field '{field.name}': {issue.message}")
    return None
