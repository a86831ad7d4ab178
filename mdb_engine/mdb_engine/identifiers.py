"""Physical identifier derivation and name validation.

The physical identifier of a tenant table is interpolated into generated
DDL as a relational object name, so every component that goes into it is
checked against a strict allow-list before the engine accepts it.
"""

from __future__ import annotations

import re

RESERVED_COLUMN = "_id"

ENV_NAME_MAX_LENGTH = 25
TABLE_NAME_MAX_LENGTH = 31
FIELD_NAME_MAX_LENGTH = 50
TABLE_DESCRIPTION_MAX_LENGTH = 500

_ENV_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def derive_table_id(owner: int, environment: str, name: str) -> str:
    """Return the physical identifier for *name* in *environment* of *owner*.

    Deterministic; must be recomputed whenever any of its inputs change.
    Underscores are legal in environment and table names, so distinct
    triples can share an identifier (``(1, "a_b", "c")`` and
    ``(1, "a", "b_c")`` both give ``_1_a_b_c``).  Callers check the
    owner index before claiming an identifier.
    """
    return f"_{owner}_{environment}_{name}"


def validate_environment_name(name: object) -> str | None:
    """Return ``None`` if *name* is a valid environment name, else a reason."""
    if not isinstance(name, str):
        return "Environment name must be a string"
    if not 1 <= len(name) <= ENV_NAME_MAX_LENGTH:
        return f"Environment name '{name}' must be between 1 and {ENV_NAME_MAX_LENGTH} characters"
    if not _ENV_NAME_RE.match(name):
        return f"Environment name '{name}' may only contain letters, digits and underscores"
    return None


def validate_table_name(name: object) -> str | None:
    """Return ``None`` if *name* is a valid local table name, else a reason."""
    if not isinstance(name, str):
        return "Table name must be a string"
    if not 1 <= len(name) <= TABLE_NAME_MAX_LENGTH:
        return f"Table name '{name}' must be between 1 and {TABLE_NAME_MAX_LENGTH} characters"
    if name == RESERVED_COLUMN:
        return f"Table name '{name}' is reserved"
    if not _TABLE_NAME_RE.match(name):
        return (
            f"Table name '{name}' must start with a letter or underscore and may only "
            "contain letters, digits and underscores"
        )
    return None


def validate_field_name(name: object) -> str | None:
    """Return ``None`` if *name* is a valid field name, else a reason."""
    if not isinstance(name, str):
        return "Field name must be a string"
    if not 1 <= len(name) <= FIELD_NAME_MAX_LENGTH:
        return f"Field name '{name}' must be between 1 and {FIELD_NAME_MAX_LENGTH} characters"
    if " " in name:
        return f"Field name '{name}' cannot contain spaces"
    if name == RESERVED_COLUMN:
        return f"Field name '{name}' is reserved"
    if not _FIELD_NAME_RE.match(name):
        return (
            f"Field name '{name}' must start with a letter or underscore and may only "
            "contain letters, digits and underscores"
        )
    return None


def validate_description(description: object) -> str | None:
    if not isinstance(description, str):
        return "Description must be a string"
    if len(description) > TABLE_DESCRIPTION_MAX_LENGTH:
        return f"Description must be at most {TABLE_DESCRIPTION_MAX_LENGTH} characters"
    return None


def validate_identifier_length(table_id: str, max_length: int) -> str | None:
    """Reject identifiers the store would silently truncate."""
    if len(table_id) > max_length:
        return f"Table identifier '{table_id}' exceeds the maximum identifier length of {max_length}"
    return None
