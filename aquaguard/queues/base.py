"""
Redis Streams consumer-group queue with at-least-once delivery.

An entry stays in the group's pending list until it is acknowledged.
Entries a worker leaves unacknowledged (a crash, or a deliberate RETRY
outcome) go idle and are claimed again with XAUTOCLAIM (Redis 6.2+) at
the start of every read pass. Once an entry has been delivered more than
``max_delivery_attempts`` times it is copied to the dead letter stream
and acknowledged instead of being handed out again.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Generic, TypeVar

import redis.asyncio as redis

from aquaguard.observability.metrics import get_metrics
from aquaguard.queues.backoff import ExponentialBackoff
from aquaguard.queues.config import QueueConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DLQ_MAX_LENGTH = 10_000


@dataclass
class StreamConfig:
    """
    Names and limits for one stream.

    Attributes:
        stream_name: Stream the producers append to
        consumer_group: Group the workers read through
        dlq_stream_name: Stream receiving dead-lettered entries
        max_stream_length: Approximate cap applied on publish
    """

    stream_name: str
    consumer_group: str
    dlq_stream_name: str
    max_stream_length: int = 100_000


class BaseRedisQueue(ABC, Generic[T]):
    """
    Consumer-group queue that yields parsed jobs of type T.

    Subclasses provide the stream names, a consumer name prefix, a
    parser from entry fields to a job, and a hook recording how many
    times the entry was delivered before.

    Usage:
        async with SensorReadingQueue() as queue:
            async for message in queue.consume():
                ...
                await queue.ack(message.message_id)
    """

    def __init__(
        self,
        redis_url: str,
        queue_config: QueueConfig | None = None,
    ):
        self._redis_url = redis_url
        self._queue_config = queue_config or QueueConfig()

        self._redis: redis.Redis | None = None
        self._consumer_name: str | None = None
        self._stream_config: StreamConfig | None = None

    @abstractmethod
    def _parse_job(self, message_id: str, fields: dict[str, str]) -> T:
        """Build a job from entry fields. Raising dead-letters the entry."""

    @abstractmethod
    def _get_stream_config(self) -> StreamConfig:
        ...

    @abstractmethod
    def _get_consumer_prefix(self) -> str:
        ...

    @abstractmethod
    def _set_job_retry_count(self, job: T, retry_count: int) -> None:
        ...

    # ── Connection ─────────────────────────────────────────

    async def connect(self) -> None:
        """Open the client and create the consumer group if it is missing."""
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._stream_config = self._get_stream_config()
        self._consumer_name = f"{self._get_consumer_prefix()}_{uuid.uuid4().hex[:8]}"

        stream = self._stream_config.stream_name
        group = self._stream_config.consumer_group
        try:
            await self._redis.xgroup_create(name=stream, groupname=group, id="0", mkstream=True)
            logger.info("Created consumer group %s on %s", group, stream)
        except redis.ResponseError as e:
            # BUSYGROUP: another worker created it first
            if "BUSYGROUP" not in str(e):
                raise

        logger.info("Consuming %s as %s", stream, self._consumer_name)

    async def close(self) -> None:
        if self._redis is None:
            return
        await self._redis.aclose()
        self._redis = None
        logger.info("Redis connection closed")

    async def __aenter__(self) -> "BaseRedisQueue[T]":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    @property
    def stream_config(self) -> StreamConfig:
        if self._stream_config is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stream_config

    # ── Consuming ──────────────────────────────────────────

    async def consume(
        self,
        count: int = 10,
        block_ms: int = 5000,
    ) -> AsyncIterator[T]:
        """
        Yield jobs until cancelled: reclaimed idle entries first, then new ones.

        A failing read pass (e.g. Redis restarting) is retried after an
        exponentially growing delay; the delay resets after a good read.

        Args:
            count: Maximum entries per XAUTOCLAIM / XREADGROUP call
            block_ms: How long XREADGROUP waits for new entries
        """
        if self._consumer_name is None:
            raise RuntimeError("Not connected. Call connect() first.")

        backoff = ExponentialBackoff(
            base_delay=self._queue_config.backoff_base_delay,
            max_delay=self._queue_config.backoff_max_delay,
        )

        while True:
            try:
                async for job in self._reclaim_pending(count):
                    yield job
                async for job in self._read_new(count, block_ms):
                    yield job
                backoff.reset()
            except asyncio.CancelledError:
                logger.info("Consumer on %s cancelled", self.stream_config.stream_name)
                break
            except Exception as e:
                delay = backoff.next_delay()
                logger.error(
                    "Read from %s failed (attempt %d, retry in %.1fs): %s",
                    self.stream_config.stream_name, backoff.attempt, delay, e,
                )
                await asyncio.sleep(delay)

    async def _read_new(self, count: int, block_ms: int) -> AsyncIterator[T]:
        response = await self.redis.xreadgroup(
            groupname=self.stream_config.consumer_group,
            consumername=self._consumer_name,
            streams={self.stream_config.stream_name: ">"},
            count=count,
            block=block_ms,
        )
        for _stream, entries in response or []:
            for msg_id, fields in entries:
                job = await self._parse_or_dead_letter(msg_id, fields)
                if job is not None:
                    self._set_job_retry_count(job, 0)
                    yield job

    async def _parse_or_dead_letter(self, msg_id: str, fields: dict[str, str]) -> T | None:
        try:
            return self._parse_job(msg_id, fields)
        except Exception as e:
            logger.error("Unparseable entry %s: %s", msg_id, e)
            await self._dead_letter(msg_id, fields, f"parse_error: {e}")
            return None

    async def _reclaim_pending(self, count: int) -> AsyncIterator[T]:
        """
        Claim entries idle longer than ``idle_timeout_ms``.

        Entries over the delivery limit are dead-lettered; the rest are
        yielded with their retry count set to prior deliveries.
        """
        stream = self.stream_config.stream_name
        try:
            # -> [next_start_id, [(msg_id, fields), ...], [deleted_ids]]
            claim = await self.redis.xautoclaim(
                name=stream,
                groupname=self.stream_config.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._queue_config.idle_timeout_ms,
                start_id="0-0",
                count=count,
            )
        except redis.ResponseError as e:
            if "unknown command" in str(e).lower():
                logger.warning("XAUTOCLAIM unsupported (Redis < 6.2); idle entries not reclaimed")
            else:
                logger.error("Reclaim on %s failed: %s", stream, e)
            return
        except Exception as e:
            logger.error("Reclaim on %s failed: %s", stream, e)
            return

        claimed = claim[1] if claim and len(claim) > 1 else []
        if not claimed:
            return

        logger.info("Reclaimed %d idle entries from %s", len(claimed), stream)
        metrics = get_metrics()
        limit = self._queue_config.max_delivery_attempts
        deliveries = await self._get_delivery_counts([msg_id for msg_id, _ in claimed])

        for msg_id, fields in claimed:
            delivered = deliveries.get(msg_id, 1)
            if delivered > limit:
                logger.warning(
                    "Entry %s delivered %d times (limit %d), dead-lettering",
                    msg_id, delivered, limit,
                )
                await self._dead_letter(msg_id, fields, "max_retries_exceeded")
                metrics.dlq_max_retries.labels(queue=stream).inc()
                continue

            job = await self._parse_or_dead_letter(msg_id, fields)
            if job is None:
                continue
            self._set_job_retry_count(job, delivered - 1)
            metrics.pending_reclaimed.labels(queue=stream).inc()
            yield job

    async def _get_delivery_counts(self, message_ids: list[str]) -> dict[str, int]:
        """Delivery counts from XPENDING; every id counts once if it fails."""
        if not message_ids:
            return {}

        try:
            pending = await self.redis.xpending_range(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                min="-",
                max="+",
                count=len(message_ids) * 2,
            )
        except Exception as e:
            logger.error("XPENDING on %s failed: %s", self.stream_config.stream_name, e)
            return dict.fromkeys(message_ids, 1)

        wanted = set(message_ids)
        return {
            entry["message_id"]: entry["times_delivered"]
            for entry in pending
            if entry["message_id"] in wanted
        }

    # ── Acknowledgement ────────────────────────────────────

    async def ack(self, message_id: str) -> None:
        await self.redis.xack(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
            message_id,
        )

    async def nack(self, message_id: str, error: str | None = None) -> None:
        """Dead-letter an entry by id (its fields are looked up) and ack it."""
        entries = await self.redis.xrange(
            self.stream_config.stream_name,
            min=message_id,
            max=message_id,
        )
        fields = entries[0][1] if entries else {}
        await self._dead_letter(message_id, fields, error)

    async def _dead_letter(
        self,
        message_id: str,
        fields: dict[str, str],
        reason: str | None,
    ) -> None:
        if fields:
            await self._move_to_dlq(message_id, fields, reason)
        await self.ack(message_id)

    async def _move_to_dlq(
        self,
        original_id: str,
        fields: dict[str, str],
        error: str | None,
    ) -> None:
        entry = {
            **fields,
            "original_id": original_id,
            "error": error or "unknown",
            "failed_at": str(time.time()),
        }
        await self.redis.xadd(self.stream_config.dlq_stream_name, entry, maxlen=DLQ_MAX_LENGTH)
        logger.warning("Dead-lettered %s: %s", original_id, error)

    # ── Inspection ─────────────────────────────────────────

    async def get_pending_count(self) -> int:
        """Delivered but unacknowledged entries; 0 when Redis is unreachable."""
        try:
            summary = await self.redis.xpending(
                self.stream_config.stream_name,
                self.stream_config.consumer_group,
            )
        except Exception:
            return 0
        return summary["pending"] if summary else 0

    async def get_stream_length(self) -> int:
        return await self.redis.xlen(self.stream_config.stream_name)

    async def health_check(self) -> bool:
        try:
            await self.redis.ping()
        except Exception:
            return False
        return True
