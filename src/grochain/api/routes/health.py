"""Health check endpoint.

Verifies connectivity to the database and Redis and reports whether the
payment reconciler is scheduled. Used by container healthchecks and load
balancers.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from grochain.infrastructure.database.engine import get_engine
from grochain.infrastructure.redis_client import get_redis
from grochain.logging_config import get_logger
from grochain.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(request: Request) -> HealthResponse:
    """Check connectivity to the database and Redis."""
    db_status = "unknown"
    redis_status = "unknown"

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    try:
        await get_redis().ping()
        redis_status = "healthy"
    except Exception as exc:
        redis_status = f"unhealthy: {exc}"
        logger.error("health.redis_check_failed", error=str(exc))

    verifier = getattr(request.app.state, "payment_verifier", None)
    if verifier is None:
        reconciler_status = "not configured"
    else:
        reconciler_status = "running" if verifier.is_running else "stopped"

    overall = "ok" if db_status == "healthy" and redis_status == "healthy" else "degraded"
    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
        reconciler=reconciler_status,
    )
