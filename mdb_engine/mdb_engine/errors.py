"""Typed error taxonomy for the schema engine.

Every failure that crosses the engine boundary is one of the classes below.
Each carries a stable ``kind`` string so the HTTP layer can translate it
into a response without inspecting message text.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""

    kind: str = "engine_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        """Response body for this error: ``detail`` and ``kind`` plus any located object."""
        body: dict[str, object] = {"detail": self.message, "kind": self.kind}
        for attr in ("field", "table"):
            value = getattr(self, attr, None)
            if value is not None:
                body[attr] = value
        return body


class ValidationError(EngineError):
    """A name, description, field definition or value is malformed."""

    kind = "validation_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(EngineError):
    """A referenced owner, environment, table or field does not exist."""

    kind = "not_found"


class ConflictError(EngineError):
    """A table or field name is already in use."""

    kind = "conflict"


class StoreError(EngineError):
    """The underlying store rejected an operation.

    ``table`` and ``field`` are populated when the raw driver message could
    be mapped onto a specific object.
    """

    kind = "store_error"

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.field = field


class PartialFailureError(EngineError):
    """A multi-step mutation stopped after some of its steps were applied.

    ``completed_steps`` lists the steps that succeeded, in order, so the
    caller can tell which stores may have diverged.
    """

    kind = "partial_failure"

    def __init__(self, message: str, *, completed_steps: list[str]) -> None:
        super().__init__(message)
        self.completed_steps = list(completed_steps)

    def to_dict(self) -> dict[str, object]:
        body = super().to_dict()
        body["completed_steps"] = self.completed_steps
        return body
