"""
Ingestion worker - consumes sensor messages and runs the orchestrator.

Runs as a standalone service that:
1. Consumes messages from the sensor stream (Redis Streams consumer group)
2. Accumulates small batches and processes them concurrently
3. Acknowledges every message whose outcome is not RETRY
4. Leaves RETRY messages pending so they are reclaimed after the idle
   timeout, and dead-lettered once the delivery limit is reached
"""

import asyncio
import time
from collections.abc import AsyncIterator

import redis.asyncio as redis
import structlog

from aquaguard.config.settings import get_settings
from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.orchestrator import IngestionOrchestrator, create_orchestrator
from aquaguard.ingestion.queue import SensorReadingQueue
from aquaguard.ingestion.schemas import SensorMessage
from aquaguard.notifications.senders import create_sender
from aquaguard.observability.metrics import get_metrics
from aquaguard.resilience.errors import ErrorAction
from aquaguard.storage.database import Database

logger = structlog.get_logger(__name__)


async def _next_message(messages: AsyncIterator[SensorMessage]) -> SensorMessage | None:
    try:
        return await messages.__anext__()
    except StopAsyncIteration:
        return None


class IngestionWorker:
    """
    Worker that drives the ingestion orchestrator from the sensor stream.

    Features:
    - Batch accumulation with configurable size and timeout
    - Concurrent processing within a batch
    - RETRY outcomes left unacknowledged for redelivery
    - Graceful shutdown with drain

    Usage:
        worker = IngestionWorker()
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: SensorReadingQueue | None = None,
        database: Database | None = None,
        orchestrator: IngestionOrchestrator | None = None,
        config: IngestionConfig | None = None,
        batch_size: int | None = None,
    ):
        """
        Initialize the ingestion worker.

        Args:
            queue: Sensor message queue (or create from config)
            database: Database connection (or create from settings)
            orchestrator: Pre-built orchestrator (built on start otherwise)
            config: Ingestion configuration
            batch_size: Messages to process per batch
        """
        self._config = config or IngestionConfig()
        self._queue = queue or SensorReadingQueue(config=self._config)
        self._database = database or Database()
        self._orchestrator = orchestrator
        self._batch_size = batch_size or self._config.worker_batch_size

        self._redis: redis.Redis | None = None
        self._running = False

        logger.info("IngestionWorker initialized", batch_size=self._batch_size)

    async def start(self) -> None:
        """
        Start the ingestion worker.

        Connects to Redis, PostgreSQL and the sensor queue, then enters the
        processing loop until stop() is called.
        """
        self._running = True
        logger.info("Starting ingestion worker")

        await self._queue.connect()
        await self._database.connect()

        if self._orchestrator is None:
            self._redis = redis.from_url(
                str(get_settings().redis_url),
                encoding="utf-8",
                decode_responses=True,
            )
            self._orchestrator = create_orchestrator(
                self._database, self._redis, create_sender(), config=self._config,
            )

        try:
            await self._process_loop()
        except asyncio.CancelledError:
            logger.info("Ingestion worker cancelled")
        except Exception as e:
            logger.error("Ingestion worker error", error=str(e))
            raise
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Stop the ingestion worker gracefully."""
        logger.info("Stopping ingestion worker")
        self._running = False

    async def _cleanup(self) -> None:
        await self._queue.close()
        await self._database.close()
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        logger.info("Ingestion worker cleaned up")

    async def _process_loop(self) -> None:
        """
        Accumulate batches from the stream, then process them.

        A batch is flushed when it is full or when ``worker_batch_timeout``
        has passed since its first message, even if the stream goes quiet.
        """
        batch: list[SensorMessage] = []
        batch_start = 0.0
        batch_timeout = self._config.worker_batch_timeout

        messages = self._queue.consume(count=self._batch_size, block_ms=5000).__aiter__()
        # Survives flush timeouts so no message is lost mid-read
        pending: asyncio.Task[SensorMessage | None] | None = None

        try:
            while self._running:
                if pending is None:
                    pending = asyncio.create_task(_next_message(messages))

                timeout = None
                if batch:
                    timeout = max(batch_timeout - (time.monotonic() - batch_start), 0.0)
                done, _ = await asyncio.wait({pending}, timeout=timeout)

                if not done:
                    await self._flush(batch)
                    batch = []
                    continue

                message = pending.result()
                pending = None
                if message is None or not self._running:
                    break

                if not batch:
                    batch_start = time.monotonic()
                batch.append(message)

                if (
                    len(batch) >= self._batch_size
                    or (time.monotonic() - batch_start) >= batch_timeout
                ):
                    await self._flush(batch)
                    batch = []
        finally:
            if pending is not None:
                pending.cancel()

        if batch:
            await self._process_batch(batch)

    async def _flush(self, batch: list[SensorMessage]) -> None:
        await self._process_batch(batch)
        await self._update_pending_metric()

    async def _process_batch(self, batch: list[SensorMessage]) -> dict[str, int]:
        """
        Process a batch of messages concurrently and acknowledge them.

        Returns:
            Count of messages per final action
        """
        if not batch:
            return {}

        start_time = time.monotonic()
        results = await asyncio.gather(
            *(self._orchestrator.process_message(message) for message in batch)
        )

        counts = {action.value: 0 for action in ErrorAction}
        for message, result in zip(batch, results):
            counts[result.action.value] += 1
            if result.action == ErrorAction.RETRY:
                logger.warning(
                    "Message left pending for redelivery",
                    message_id=message.message_id,
                    device_id=result.device_id,
                    retry_count=message.retry_count,
                )
                continue
            try:
                await self._queue.ack(message.message_id)
            except Exception as e:
                logger.error("Failed to ack message", message_id=message.message_id, error=str(e))

        logger.info(
            "Batch processed",
            messages=len(batch),
            latency_ms=round((time.monotonic() - start_time) * 1000, 2),
            **counts,
        )
        return counts

    async def _update_pending_metric(self) -> None:
        try:
            pending = await self._queue.get_pending_count()
            get_metrics().set_queue_pending(self._config.stream_name, pending)
        except Exception as e:
            logger.debug("Failed to update pending metric", error=str(e))
