"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from middleman_escrow.api.deps import get_database
from middleman_escrow.domain.exceptions import StorageUnavailableError
from middleman_escrow.infrastructure.database.engine import Database
from middleman_escrow.infrastructure.redis_client import get_redis, is_redis_available
from middleman_escrow.logging_config import get_logger
from middleman_escrow.schemas.escrow import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(database: Database = Depends(get_database)) -> HealthResponse:
    """Check connectivity to the database and Redis."""
    try:
        await database.ping()
        db_status = "healthy"
    except StorageUnavailableError as exc:
        db_status = f"unhealthy: {exc.detail}"
        logger.error("health.db_check_failed", error=exc.detail)

    if not is_redis_available():
        redis_status = "disabled"
    else:
        try:
            await get_redis().ping()
            redis_status = "healthy"
        except RedisError as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    # Redis only backs idempotency keys; running without it is not a fault.
    healthy = db_status == "healthy" and not redis_status.startswith("unhealthy")
    overall = "ok" if healthy else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
    )
