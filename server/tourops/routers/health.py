"""Liveness and readiness probes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession
from ..core.observability import SERVICE_VERSION
from ..schemas.health import HealthResponse, HealthStatus, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """Liveness: answers as long as the event loop does."""
    pong = HealthResponse(status=HealthStatus.HEALTHY, timestamp=datetime.now(timezone.utc), version=SERVICE_VERSION)
    return JSONResponse(status_code=200, content=pong.model_dump(mode="json"))


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Readiness probe could not reach the database", extra={"error": str(e)})
        return "unavailable"
    return "ok"


@router.post("/ready", response_model=ReadinessResponse)
async def health_ready(db: AsyncSession = DatabaseSession) -> JSONResponse:
    """
    Readiness: every dependency must answer.

    Responds 503 with status "degraded" when one does not, so load balancers
    stop routing bookings here.
    """
    checks = {"database": await _check_database(db)}
    ready = all(result == "ok" for result in checks.values())

    body = ReadinessResponse(status=HealthStatus.HEALTHY if ready else HealthStatus.DEGRADED, checks=checks)
    return JSONResponse(status_code=200 if ready else 503, content=body.model_dump(mode="json"))
