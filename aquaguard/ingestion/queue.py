"""
Redis Streams queue carrying inbound sensor messages.

Each stream entry has a ``device_id`` field (the message attribute) and a
``data`` field holding the JSON body: either a single reading or
``{"readings": [...]}``. Entries whose body is not valid JSON are moved
to the dead letter stream when parsed.
"""

import json
import logging
import time
from typing import Any

from aquaguard.config.settings import get_settings
from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.schemas import SensorMessage
from aquaguard.queues import BaseRedisQueue, QueueConfig, StreamConfig

logger = logging.getLogger(__name__)

_RESERVED_FIELDS = frozenset({"device_id", "deviceId", "data"})


class SensorReadingQueue(BaseRedisQueue[SensorMessage]):
    """
    Redis Streams wrapper for sensor reading messages.

    Usage:
        queue = SensorReadingQueue()
        await queue.connect()

        await queue.publish("sensor-01", {"ph": 7.1, "timestamp": 1700000000000})

        async for message in queue.consume():
            ...
            await queue.ack(message.message_id)
    """

    def __init__(
        self,
        config: IngestionConfig | None = None,
        redis_url: str | None = None,
    ):
        self._config = config or IngestionConfig()

        super().__init__(
            redis_url=redis_url or str(get_settings().redis_url),
            queue_config=QueueConfig(
                idle_timeout_ms=self._config.idle_timeout_ms,
                max_delivery_attempts=self._config.max_delivery_attempts,
            ),
        )

    def _get_stream_config(self) -> StreamConfig:
        return StreamConfig(
            stream_name=self._config.stream_name,
            consumer_group=self._config.consumer_group,
            dlq_stream_name=self._config.dlq_stream_name,
            max_stream_length=self._config.max_stream_length,
        )

    def _get_consumer_prefix(self) -> str:
        return "ingest_worker"

    def _parse_job(self, message_id: str, fields: dict[str, str]) -> SensorMessage:
        """Decode a stream entry; invalid JSON raises and dead-letters it."""
        raw = fields.get("data")
        data = json.loads(raw) if raw else None
        return SensorMessage(
            message_id=message_id,
            device_id=fields.get("device_id") or fields.get("deviceId"),
            data=data,
            attributes={k: v for k, v in fields.items() if k not in _RESERVED_FIELDS},
        )

    def _set_job_retry_count(self, job: SensorMessage, retry_count: int) -> None:
        job.retry_count = retry_count

    async def publish(self, device_id: str, data: Any) -> str:
        """
        Publish a sensor message.

        Args:
            device_id: Reporting device
            data: A reading dict or ``{"readings": [...]}``

        Returns:
            Stream message ID
        """
        message_id = await self.redis.xadd(
            name=self.stream_config.stream_name,
            fields={
                "device_id": device_id,
                "data": json.dumps(data),
                "queued_at": str(time.time()),
            },
            maxlen=self.stream_config.max_stream_length,
            approximate=True,
        )
        logger.debug("Published sensor message for %s", device_id)
        return str(message_id)
