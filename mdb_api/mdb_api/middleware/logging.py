"""Request-logging middleware for the MDB API."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("mdb_api.access")

# Header names whose values must be masked in log output.
_SENSITIVE_HEADERS: frozenset[str] = frozenset({"authorization", "x-api-key", "cookie"})
_MASK: str = "***"

_CORRELATION_HEADER: str = "X-Correlation-ID"


def _safe_headers(request: Request) -> dict[str, str]:
    """Return a copy of the request headers with sensitive values masked."""
    return {key: _MASK if key.lower() in _SENSITIVE_HEADERS else value for key, value in request.headers.items()}


def _owner_from_path(path: str) -> str | None:
    """Best-effort owner id for the log line.

    ``/users/{id}``, ``/environments/{id}`` and ``/tables/{id}`` carry the
    owner as the segment after the resource; record and by-id routes carry
    a table id whose first segment is the owner.
    """
    parts = [p for p in path.split("/") if p]
    for resource in ("users", "environments", "tables", "records"):
        if resource in parts:
            idx = parts.index(resource)
            if idx + 1 >= len(parts):
                return None
            segment = parts[idx + 1]
            if segment == "by-id" and idx + 2 < len(parts):
                segment = parts[idx + 2]
            if segment.startswith("_"):
                segment = segment[1:].split("_", 1)[0]
            return segment if segment.isdigit() else None
    return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration.

    Each request is tagged with a ``correlation_id`` (taken from the
    incoming ``X-Correlation-ID`` header or generated as a UUID-4), which
    is echoed back on the response.  The payload is attached to the log
    record as ``extra={"request": ...}`` so that :class:`JSONFormatter`
    can emit it as structured fields.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(_CORRELATION_HEADER) or str(uuid.uuid4())

        start = time.monotonic()
        response: Response | None = None
        try:
            response = await call_next(request)
            response.headers[_CORRELATION_HEADER] = correlation_id
            return response
        finally:
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            status_code = response.status_code if response is not None else 500

            log_payload: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "query": str(request.url.query) if request.url.query else None,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "client": request.client.host if request.client else None,
                "correlation_id": correlation_id,
                "owner_id": _owner_from_path(request.url.path),
                "headers": _safe_headers(request),
            }
            if status_code >= 500:
                logger.error("request completed", extra={"request": log_payload})
            elif status_code >= 400:
                logger.warning("request completed", extra={"request": log_payload})
            else:
                logger.info("request completed", extra={"request": log_payload})
