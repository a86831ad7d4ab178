"""Health-check and readiness probe endpoints.

``/health`` (liveness) is registered under the versioned API prefix
(``/api/v1/health``).  ``/ready`` is registered at the application root so
orchestrators can gate traffic independently of the API version.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from mdb_engine.state.tables import TableDescriptorTable
from sqlalchemy import select, text

from mdb_api import __version__
from mdb_api.dependencies import SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session: SessionDep) -> dict[str, Any]:
    """Return service health.

    Always HTTP 200 so load-balancers see the service as alive; the ``db``
    field reports whether the database answered.
    """
    result: dict[str, Any] = {"status": "healthy", "version": __version__, "db": "ok"}
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        result["db"] = "degraded"
    return result


# ---------------------------------------------------------------------------
# Readiness probe (outside API versioning)
# ---------------------------------------------------------------------------

readiness_router = APIRouter(tags=["infrastructure"])


@readiness_router.get("/ready")
async def readiness_probe(session: SessionDep) -> JSONResponse:
    """Readiness probe.

    Checks:
    1. **Database connectivity**: ``SELECT 1``.
    2. **Metadata stores**: the descriptor table is queryable, i.e. the
       startup ``create_all`` has run against this database.

    Returns HTTP 200 with ``"ready"`` or HTTP 503 with ``"not_ready"``.
    """
    checks: dict[str, str] = {"db": "ok", "metadata": "ok"}
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Readiness: DB check failed: %s", exc)
        checks["db"] = "unavailable"
        checks["metadata"] = "unavailable"
    else:
        try:
            await session.execute(select(TableDescriptorTable.table_id).limit(1))
        except Exception as exc:
            logger.error("Readiness: metadata check failed: %s", exc)
            checks["metadata"] = "unavailable"

    ready = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
