"""
Dependency injection for FastAPI endpoints.
"""

from typing import AsyncGenerator

import redis.asyncio as redis

from aquaguard.alerts.repository import AlertRepository
from aquaguard.config.settings import get_settings
from aquaguard.digests.repository import DigestRepository
from aquaguard.storage.database import Database

# Global instances (initialized on first request)
_redis_client: redis.Redis | None = None
_database: Database | None = None


async def get_redis_client() -> AsyncGenerator[redis.Redis, None]:
    """Get the shared Redis client."""
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )

    yield _redis_client


async def get_database() -> Database:
    """Get the shared database, connecting on first use."""
    global _database

    if _database is None:
        database = Database()
        await database.connect()
        _database = database

    return _database


async def get_alert_repository() -> AlertRepository:
    return AlertRepository(await get_database())


async def get_digest_repository() -> DigestRepository:
    return DigestRepository(await get_database())


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _redis_client, _database

    if _database is not None:
        await _database.close()
        _database = None

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
