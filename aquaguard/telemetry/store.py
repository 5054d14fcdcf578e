"""Time-series store adapter.

Latest readings and the sampled history log live in Redis:

    telemetry:latest:{device_id}    JSON of the most recent reading
    telemetry:history:{device_id}   sorted set of reading JSON scored by timestamp

Device presence is written through the DeviceRepository. The per-device
reading counter that gates history appends is an in-process TTLCache;
losing it only shifts which readings get sampled.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis

from aquaguard.devices.repository import DeviceRepository
from aquaguard.devices.schemas import DeviceFact
from aquaguard.ingestion.schemas import SensorReading
from aquaguard.observability.metrics import get_metrics
from aquaguard.resilience.cache import TTLCache

logger = logging.getLogger(__name__)

LATEST_KEY_PREFIX = "telemetry:latest"
HISTORY_KEY_PREFIX = "telemetry:history"


def latest_key(device_id: str) -> str:
    return f"{LATEST_KEY_PREFIX}:{device_id}"


def history_key(device_id: str) -> str:
    return f"{HISTORY_KEY_PREFIX}:{device_id}"


class TelemetryStore:
    """Reads and writes sensor readings and device presence.

    Args:
        redis_client: Async Redis client (``decode_responses=True``).
        device_repository: Registry adapter used for status writes.
        counter_cache: Per-device reading counters for history sampling.
        history_max_length: History entries kept per device.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        device_repository: DeviceRepository,
        counter_cache: TTLCache[int] | None = None,
        history_max_length: int = 10_000,
    ) -> None:
        self._redis = redis_client
        self._devices = device_repository
        if counter_cache is None:
            counter_cache = TTLCache(ttl_seconds=86_400.0, max_size=10_000)
        self._counters: TTLCache[int] = counter_cache
        self._history_max_length = history_max_length

    @property
    def counter_cache(self) -> TTLCache[int]:
        return self._counters

    async def write_latest(self, device_id: str, reading: SensorReading) -> None:
        """Overwrite the latest reading for a device."""
        await self._redis.set(latest_key(device_id), json.dumps(reading.to_store_dict()))

    async def get_latest(self, device_id: str) -> SensorReading | None:
        raw = await self._redis.get(latest_key(device_id))
        if raw is None:
            return None
        return SensorReading.model_validate_json(raw)

    async def append_history(self, device_id: str, reading: SensorReading) -> None:
        """Append a reading to the history log and trim it to its cap."""
        key = history_key(device_id)
        member = json.dumps(reading.to_store_dict())
        pipe = self._redis.pipeline()
        pipe.zadd(key, {member: reading.timestamp})
        pipe.zremrangebyrank(key, 0, -(self._history_max_length + 1))
        await pipe.execute()

    async def write_history_sampled(
        self,
        device_id: str,
        reading: SensorReading,
        every: int,
    ) -> bool:
        """Append to history only on every ``every``-th reading of a device.

        Returns:
            True if the reading was appended.
        """
        count = (self._counters.get(device_id) or 0) + 1
        self._counters.set(device_id, count)

        if count % every != 0:
            return False

        await self.append_history(device_id, reading)
        get_metrics().history_appends.inc()
        logger.debug("History appended for %s (reading #%d)", device_id, count)
        return True

    async def get_history_window(
        self,
        device_id: str,
        since_ms: int,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Return up to ``limit`` most recent readings at or after ``since_ms``.

        Results are ordered oldest first.
        """
        members = await self._redis.zrevrangebyscore(
            history_key(device_id),
            "+inf",
            since_ms,
            start=0,
            num=limit,
        )
        readings = [json.loads(m) for m in members]
        readings.reverse()
        return readings

    async def touch_device_status(
        self,
        device: DeviceFact,
        throttle_seconds: float,
        now: datetime | None = None,
    ) -> bool:
        """Mark the device online unless a status write happened recently.

        Returns:
            True if the status was written.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=throttle_seconds)

        if device.last_seen is not None and device.last_seen > cutoff:
            return False

        written = await self._devices.touch_online(device.device_id, now, cutoff)
        if written:
            get_metrics().device_status_writes.labels(status="online").inc()
            logger.debug("Device %s marked online", device.device_id)
        return written
