"""Tests for the ingestion worker batch handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.orchestrator import ProcessingResult
from aquaguard.ingestion.schemas import SensorMessage
from aquaguard.ingestion.worker import IngestionWorker
from aquaguard.resilience.errors import ErrorAction


def _message(message_id: str) -> SensorMessage:
    return SensorMessage(message_id=message_id, device_id="AG-001", data={"ph": 7.0})


@pytest.fixture
def queue() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def orchestrator() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def worker(queue, orchestrator) -> IngestionWorker:
    return IngestionWorker(
        queue=queue,
        database=AsyncMock(),
        orchestrator=orchestrator,
        config=IngestionConfig(),
    )


def _results(*actions: ErrorAction):
    return [
        ProcessingResult(message_id=f"{i}-0", device_id="AG-001", action=action)
        for i, action in enumerate(actions)
    ]


class TestProcessBatch:
    """Acknowledgement follows the message outcome."""

    async def test_acks_continue_and_skip(self, worker, queue, orchestrator):
        orchestrator.process_message.side_effect = _results(
            ErrorAction.CONTINUE, ErrorAction.SKIP
        )

        counts = await worker._process_batch([_message("0-0"), _message("1-0")])

        assert counts == {"continue": 1, "skip": 1, "retry": 0}
        assert [c.args[0] for c in queue.ack.await_args_list] == ["0-0", "1-0"]

    async def test_retry_left_pending(self, worker, queue, orchestrator):
        orchestrator.process_message.side_effect = _results(
            ErrorAction.RETRY, ErrorAction.CONTINUE
        )

        counts = await worker._process_batch([_message("0-0"), _message("1-0")])

        assert counts["retry"] == 1
        queue.ack.assert_awaited_once_with("1-0")

    async def test_ack_failure_does_not_stop_batch(self, worker, queue, orchestrator):
        orchestrator.process_message.side_effect = _results(
            ErrorAction.CONTINUE, ErrorAction.CONTINUE
        )
        queue.ack.side_effect = [ConnectionError("redis down"), None]

        await worker._process_batch([_message("0-0"), _message("1-0")])

        assert queue.ack.await_count == 2

    async def test_empty_batch(self, worker, orchestrator):
        assert await worker._process_batch([]) == {}
        orchestrator.process_message.assert_not_awaited()


class TestProcessLoop:
    async def test_batches_by_size_and_flushes_remainder(self, queue, orchestrator):
        messages = [_message(f"{i}-0") for i in range(5)]

        async def consume(count, block_ms):
            for message in messages:
                yield message

        queue.consume = MagicMock(side_effect=consume)
        orchestrator.process_message.side_effect = lambda m: ProcessingResult(
            m.message_id, m.device_id, ErrorAction.CONTINUE
        )
        worker = IngestionWorker(
            queue=queue, database=AsyncMock(), orchestrator=orchestrator,
            config=IngestionConfig(worker_batch_timeout=60), batch_size=2,
        )
        worker._running = True

        await worker._process_loop()

        assert queue.ack.await_count == 5
        assert queue.get_pending_count.await_count == 2

    async def test_partial_batch_flushed_when_stream_goes_quiet(self, queue, orchestrator):
        quiet = asyncio.Event()

        async def consume(count, block_ms):
            yield _message("1-0")
            yield _message("2-0")
            await quiet.wait()

        queue.consume = MagicMock(side_effect=consume)
        orchestrator.process_message.side_effect = lambda m: ProcessingResult(
            m.message_id, m.device_id, ErrorAction.CONTINUE
        )
        worker = IngestionWorker(
            queue=queue, database=AsyncMock(), orchestrator=orchestrator,
            config=IngestionConfig(worker_batch_timeout=0.1), batch_size=16,
        )
        worker._running = True

        task = asyncio.create_task(worker._process_loop())
        await asyncio.sleep(0.5)

        assert [c.args[0] for c in queue.ack.await_args_list] == ["1-0", "2-0"]
        assert queue.get_pending_count.await_count == 1
        assert not task.done()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_start_and_cleanup(self, queue, orchestrator):
        database = AsyncMock()

        async def consume(count, block_ms):
            return
            yield

        queue.consume = MagicMock(side_effect=consume)
        worker = IngestionWorker(queue=queue, database=database, orchestrator=orchestrator)

        await worker.start()

        queue.connect.assert_awaited_once()
        database.connect.assert_awaited_once()
        queue.close.assert_awaited_once()
        database.close.assert_awaited_once()
