"""
Health check endpoint with infrastructure checks.
"""

import time

import redis.asyncio as redis
import structlog
from fastapi import APIRouter, Depends

from aquaguard import __version__
from aquaguard.api.dependencies import get_database, get_redis_client
from aquaguard.api.models import ComponentHealth, HealthResponse, QueueMetrics
from aquaguard.ingestion.config import IngestionConfig
from aquaguard.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    healthy = await db.health_check()
    latency_ms = (time.perf_counter() - start) * 1000
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round(latency_ms, 2),
    )


async def _check_redis(redis_client: redis.Redis) -> ComponentHealth:
    """Check Redis connectivity and measure latency."""
    start = time.perf_counter()
    try:
        await redis_client.ping()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(status="healthy", latency_ms=round(latency_ms, 2))
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


async def _get_queue_metrics(redis_client: redis.Redis) -> dict[str, QueueMetrics]:
    """Stream length and pending count for the sensor stream."""
    config = IngestionConfig()
    stream = config.stream_name
    try:
        length = await redis_client.xlen(stream)
    except Exception:
        return {stream: QueueMetrics(length=-1, pending=-1)}

    try:
        info = await redis_client.xpending(stream, config.consumer_group)
        pending = info["pending"] if info else 0
    except Exception:
        # Group not created yet; nothing has been delivered
        pending = 0
    return {stream: QueueMetrics(length=length, pending=pending)}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the health of the service and its dependencies.",
)
async def health_check(
    db: Database = Depends(get_database),
    redis_client: redis.Redis = Depends(get_redis_client),
) -> HealthResponse:
    """
    Check service health including database, Redis, and the sensor stream.

    Status logic:
    - unhealthy: database is down
    - degraded: Redis is down (acknowledgement works, ingestion does not)
    - healthy: all components operational
    """
    components: dict[str, ComponentHealth] = {}

    components["database"] = await _check_database(db)
    components["redis"] = await _check_redis(redis_client)

    queues: dict[str, QueueMetrics] = {}
    if components["redis"].status == "healthy":
        queues = await _get_queue_metrics(redis_client)

    if components["database"].status == "unhealthy":
        overall = "unhealthy"
    elif components["redis"].status == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    if overall != "healthy":
        logger.warning("Health check not healthy", status=overall)

    return HealthResponse(
        status=overall,
        components=components,
        queues=queues,
        version=__version__,
    )
