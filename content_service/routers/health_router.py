"""
Health check router.

Liveness and readiness probes for orchestrators.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..dependencies import get_model_manager
from ..domain.exceptions import CacheException
from ..repositories.base import ModelManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    service: str = "content-service"
    version: str = "1.0.0"


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict
    pool: dict
    timestamp: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health_check():
    """Always returns 200 OK if the service is running."""
    return HealthResponse(status="healthy", timestamp=datetime.now(timezone.utc).isoformat())


@router.get("/ready", response_model=ReadinessResponse, summary="Readiness check")
async def readiness_check(mm: ModelManager = Depends(get_model_manager)):
    """
    Readiness check.

    The database must answer for the service to be ready. The cache is
    reported but never blocks readiness since reads fall back to the
    database.
    """
    checks = {}

    try:
        async with mm.db.transaction() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Readiness database check failed", error=str(e))
        checks["database"] = "unhealthy"

    if mm.cache is None:
        checks["cache"] = "disabled"
    else:
        try:
            await mm.cache.store.get("__ready__")
            checks["cache"] = "healthy"
        except CacheException as e:
            logger.warning("Readiness cache check failed", error=str(e))
            checks["cache"] = "degraded"

    ready = checks["database"] == "healthy"
    response = ReadinessResponse(
        ready=ready,
        checks=checks,
        pool=mm.db.get_pool_stats(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    if not ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response.model_dump()
        )
    return response
