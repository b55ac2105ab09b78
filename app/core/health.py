"""Health check endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class IngestionPoolHealth(BaseModel):
    """Occupancy of the background ingestion pool."""

    max_concurrent: int
    active: int
    queued: int


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    ingestion: IngestionPoolHealth | None = None


def _pool_health(request: Request) -> IngestionPoolHealth | None:
    pool = getattr(request.app.state, "upload_pool", None)
    if pool is None:
        return None
    return IngestionPoolHealth(**pool.stats())


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic liveness check.

    Returns:
        Health status response.
    """
    logger.debug("health.check_started")
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Readiness check: database connectivity and ingestion pool state.

    Reports "degraded" when the database is reachable but the worker pool
    has not been started.

    Args:
        request: Incoming request (for application state).
        db: Database session dependency.

    Returns:
        Health status with database and pool state.
    """
    logger.debug("health.readiness_check_started")
    ingestion = _pool_health(request)

    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return HealthResponse(status="unhealthy", database="disconnected", ingestion=ingestion)

    logger.info("health.database_connected")
    return HealthResponse(
        status="ok" if ingestion is not None else "degraded",
        database="connected",
        ingestion=ingestion,
    )
