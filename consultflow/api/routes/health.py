import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from consultflow.db.base import database_reachable
from consultflow.db.redis import redis_reachable

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness probe. Returns 503 during graceful shutdown."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "consultflow"},
        )
    return {"status": "healthy", "service": "consultflow"}


@router.get("/ready")
async def readiness_check():
    """Readiness check - verifies the database and Redis are reachable."""
    checks = {}

    checks["database"], error = await database_reachable()
    if error:
        logger.error("database_health_check_failed", error=error)

    checks["redis"], error = await redis_reachable()
    if error:
        logger.error("redis_health_check_failed", error=error)

    all_healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
