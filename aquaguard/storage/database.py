"""
PostgreSQL access for devices, alerts, digests and preferences.

Repositories receive a Database and never touch the asyncpg pool
directly. ``transaction()`` is the single atomicity primitive: alert
deduplication and digest appends run their read-check-write inside it.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from aquaguard.config.settings import get_settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "aquaguard"


class Database:
    """
    asyncpg pool wrapper shared by the repositories.

    Usage:
        db = Database()
        await db.connect()
        row = await db.fetchrow("SELECT * FROM devices WHERE device_id = $1", device_id)
        await db.close()
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
    ):
        settings = get_settings()

        self._dsn = database_url or str(settings.database_url)
        self._pool_bounds = (
            min_size or settings.db_pool_min_size,
            max_size or settings.db_pool_max_size,
        )
        self._command_timeout = settings.db_command_timeout
        self._pool: asyncpg.Pool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Create the pool. Raises if PostgreSQL is unreachable."""
        low, high = self._pool_bounds
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=low,
                max_size=high,
                command_timeout=self._command_timeout,
                server_settings={"application_name": APPLICATION_NAME},
            )
        except (OSError, asyncpg.PostgresError) as e:
            logger.error("PostgreSQL pool creation failed: %s", e)
            raise
        logger.info("PostgreSQL pool ready (%d-%d connections)", low, high)

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("PostgreSQL pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Yield a connection whose statements commit together or not at all.

        Usage:
            async with db.transaction() as conn:
                await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", key)
                await conn.execute("INSERT INTO alerts ...")
        """
        async with self._require_pool().acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement; returns the PostgreSQL status tag."""
        return await self._require_pool().execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._require_pool().fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self._require_pool().fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._require_pool().fetchval(query, *args)

    async def health_check(self) -> bool:
        """True when a trivial query round-trips."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("PostgreSQL health check failed: %s", e)
            return False
