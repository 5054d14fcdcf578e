"""Tests for the sensor reading stream queue."""

import json
from unittest.mock import AsyncMock

import pytest

from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.queue import SensorReadingQueue


@pytest.fixture
def queue() -> SensorReadingQueue:
    q = SensorReadingQueue(config=IngestionConfig(), redis_url="redis://localhost:6379/1")
    q._redis = AsyncMock()
    q._consumer_name = "ingest_worker_test"
    q._stream_config = q._get_stream_config()
    return q


class TestSensorReadingQueue:
    """Stream naming, parsing and publishing."""

    def test_stream_config(self, queue):
        config = queue.stream_config
        assert config.stream_name == "sensor_readings"
        assert config.consumer_group == "ingestion_workers"
        assert config.dlq_stream_name == "sensor_readings:dlq"

    def test_queue_config_from_ingestion_config(self):
        q = SensorReadingQueue(
            config=IngestionConfig(idle_timeout_ms=5000, max_delivery_attempts=2),
            redis_url="redis://localhost:6379/1",
        )
        assert q._queue_config.idle_timeout_ms == 5000
        assert q._queue_config.max_delivery_attempts == 2

    def test_parse_single_reading(self, queue):
        message = queue._parse_job(
            "1-0", {"device_id": "AG-001", "data": json.dumps({"ph": 7.2}), "queued_at": "1.0"}
        )
        assert message.message_id == "1-0"
        assert message.device_id == "AG-001"
        assert message.raw_readings() == [{"ph": 7.2}]
        assert message.attributes == {"queued_at": "1.0"}

    def test_parse_batch(self, queue):
        body = {"readings": [{"ph": 7.0}, {"tds": 300}]}
        message = queue._parse_job("1-0", {"deviceId": "AG-002", "data": json.dumps(body)})
        assert message.device_id == "AG-002"
        assert len(message.raw_readings()) == 2

    def test_parse_missing_body(self, queue):
        message = queue._parse_job("1-0", {"device_id": "AG-001"})
        assert message.raw_readings() == []

    def test_parse_invalid_json_raises(self, queue):
        with pytest.raises(json.JSONDecodeError):
            queue._parse_job("1-0", {"device_id": "AG-001", "data": "{not json"})

    async def test_invalid_json_goes_to_dlq(self, queue):
        fields = {"device_id": "AG-001", "data": "{not json"}
        job = await queue._parse_or_dead_letter("1-0", fields)

        assert job is None
        dlq_call = queue._redis.xadd.await_args
        assert dlq_call.args[0] == "sensor_readings:dlq"
        assert dlq_call.args[1]["error"].startswith("parse_error")
        queue._redis.xack.assert_awaited_once_with(
            "sensor_readings", "ingestion_workers", "1-0"
        )

    async def test_publish(self, queue):
        queue._redis.xadd.return_value = "1700000000000-0"

        message_id = await queue.publish("AG-001", {"ph": 7.1})

        assert message_id == "1700000000000-0"
        kwargs = queue._redis.xadd.await_args.kwargs
        assert kwargs["name"] == "sensor_readings"
        assert kwargs["fields"]["device_id"] == "AG-001"
        assert json.loads(kwargs["fields"]["data"]) == {"ph": 7.1}
        assert kwargs["approximate"] is True

    def test_set_retry_count(self, queue):
        message = queue._parse_job("1-0", {"device_id": "AG-001", "data": "{}"})
        queue._set_job_retry_count(message, 3)
        assert message.retry_count == 3
