"""
Health check endpoint: database and Redis reachability.
"""

import time

import redis.asyncio as redis
import structlog
from fastapi import APIRouter, Depends

from dropfeed.api.dependencies import get_database, get_redis_client
from dropfeed.api.models import ComponentHealth, HealthResponse
from dropfeed.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    start = time.perf_counter()
    healthy = await db.health_check()
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


async def _check_redis(redis_client: redis.Redis) -> ComponentHealth:
    start = time.perf_counter()
    try:
        await redis_client.ping()
    except (redis.RedisError, OSError) as e:
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
            details={"error": str(e)},
        )
    return ComponentHealth(
        status="healthy",
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    db: Database = Depends(get_database),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> HealthResponse:
    """
    Status logic:
    - unhealthy: database is down
    - degraded: Redis is down (no feed cache, no status events)
    - healthy: all components operational
    """
    components = {
        "database": await _check_database(db),
        "redis": await _check_redis(redis_client),
    }

    if components["database"].status == "unhealthy":
        status = "unhealthy"
    elif components["redis"].status == "unhealthy":
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning("Health check not healthy", status=status)
    return HealthResponse(status=status, components=components)
