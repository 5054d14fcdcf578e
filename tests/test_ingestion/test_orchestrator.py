"""Tests for the ingestion orchestrator."""

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from aquaguard.alerts.schemas import AlertCreateResult
from aquaguard.devices.schemas import DeviceLocation
from aquaguard.evaluation.schemas import DEFAULT_THRESHOLDS
from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.orchestrator import IngestionOrchestrator, create_orchestrator
from aquaguard.ingestion.schemas import SensorMessage
from aquaguard.resilience.cache import TTLCache
from aquaguard.resilience.errors import ErrorAction, PermanentStoreError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


def _message(data, device_id="AG-001", message_id="1-0") -> SensorMessage:
    return SensorMessage(message_id=message_id, device_id=device_id, data=data)


def _reading(**values) -> dict:
    return {"timestamp": NOW_MS - 1000, **values}


# ── Fixtures ────────────────────────────────────────────


@pytest.fixture
def devices(registered_device) -> AsyncMock:
    repo = AsyncMock()
    repo.get_device.return_value = registered_device
    return repo


@pytest.fixture
def store() -> AsyncMock:
    store = AsyncMock()
    store.touch_device_status.return_value = True
    store.get_history_window.return_value = []
    store.write_history_sampled.return_value = False
    return store


@pytest.fixture
def thresholds() -> AsyncMock:
    repo = AsyncMock()
    repo.get_threshold_config.return_value = DEFAULT_THRESHOLDS
    return repo


@pytest.fixture
def alerts() -> AsyncMock:
    repo = AsyncMock()
    repo.create_if_absent.side_effect = lambda alert: AlertCreateResult(alert=alert)
    return repo


@pytest.fixture
def dispatcher(make_preference) -> AsyncMock:
    mock = AsyncMock()
    mock.resolve_recipients.return_value = [make_preference()]
    return mock


@pytest.fixture
def aggregator() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def orchestrator(devices, store, thresholds, alerts, dispatcher, aggregator):
    return IngestionOrchestrator(
        devices=devices,
        store=store,
        thresholds=thresholds,
        alerts=alerts,
        dispatcher=dispatcher,
        aggregator=aggregator,
        config=IngestionConfig(),
        clock=lambda: NOW,
    )


def _created_alerts(alerts: AsyncMock) -> list:
    return [call.args[0] for call in alerts.create_if_absent.await_args_list]


# ── Message validation ──────────────────────────────────


class TestMessageValidation:
    """Whole-message checks resolve to SKIP."""

    async def test_invalid_device_id(self, orchestrator, devices):
        result = await orchestrator.process_message(_message(_reading(ph=7.0), device_id="bad id!"))

        assert result.action == ErrorAction.SKIP
        assert result.reason == "invalid device id"
        devices.get_device.assert_not_awaited()

    async def test_missing_device_id(self, orchestrator):
        result = await orchestrator.process_message(_message(_reading(ph=7.0), device_id=None))
        assert result.action == ErrorAction.SKIP

    async def test_device_id_trimmed(self, orchestrator, devices):
        await orchestrator.process_message(_message(_reading(ph=7.0), device_id="  AG-001 "))
        devices.get_device.assert_awaited_once_with("AG-001")

    async def test_empty_message(self, orchestrator):
        result = await orchestrator.process_message(_message(None))
        assert result.action == ErrorAction.SKIP
        assert result.reason == "empty message"

    async def test_oversized_batch(self, orchestrator, store):
        batch = {"readings": [_reading(ph=7.0)] * 101}

        result = await orchestrator.process_message(_message(batch))

        assert result.action == ErrorAction.SKIP
        assert result.readings == 101
        store.write_latest.assert_not_awaited()

    async def test_batch_at_cap(self, orchestrator, store):
        batch = {"readings": [_reading(ph=7.0)] * 100}

        result = await orchestrator.process_message(_message(batch))

        assert result.action == ErrorAction.CONTINUE
        assert result.stored == 100


# ── Reading processing ──────────────────────────────────


class TestReadingProcessing:
    """Per-reading storage, status and isolation."""

    async def test_normal_reading_stored_without_alert(self, orchestrator, store, alerts):
        result = await orchestrator.process_message(_message(_reading(ph=7.1, tds=300, turbidity=1)))

        assert result.action == ErrorAction.CONTINUE
        assert (result.readings, result.stored, result.alerts_created) == (1, 1, 0)
        store.write_latest.assert_awaited_once()
        store.write_history_sampled.assert_awaited_once()
        assert store.write_history_sampled.await_args.args[2] == 5
        alerts.create_if_absent.assert_not_awaited()

    async def test_history_window_read_before_sampled_write(self, orchestrator, store):
        order = []
        store.get_history_window.side_effect = lambda *a: order.append("window") or []
        store.write_history_sampled.side_effect = lambda *a: order.append("append") or False

        await orchestrator.process_message(_message(_reading(ph=7.1)))

        assert order == ["window", "append"]
        device_id, since_ms, limit = store.get_history_window.await_args.args
        assert since_ms == NOW_MS - 30 * 60 * 1000
        assert limit == 10

    async def test_unknown_device(self, orchestrator, devices, store):
        devices.get_device.return_value = None

        result = await orchestrator.process_message(_message(_reading(ph=9.5)))

        assert result.action == ErrorAction.CONTINUE
        assert result.stored == 0
        store.touch_device_status.assert_not_awaited()
        store.write_latest.assert_not_awaited()

    async def test_unregistered_device_touches_status_only(
        self, orchestrator, devices, store, registered_device
    ):
        devices.get_device.return_value = replace(
            registered_device, location=DeviceLocation(building="Main Lab")
        )

        result = await orchestrator.process_message(_message(_reading(ph=9.5)))

        assert result.stored == 0
        store.touch_device_status.assert_awaited_once()
        store.write_latest.assert_not_awaited()

    async def test_invalid_reading_does_not_abort_siblings(self, orchestrator, store):
        batch = {"readings": [_reading(ph=7.0), _reading(ph=99), _reading(tds=300)]}

        result = await orchestrator.process_message(_message(batch))

        assert result.action == ErrorAction.CONTINUE
        assert (result.readings, result.stored, result.failed) == (3, 2, 1)
        assert store.write_latest.await_count == 2

    async def test_drifting_timestamp_replaced(self, orchestrator, store):
        await orchestrator.process_message(_message({"ph": 7.0, "timestamp": 0}))

        reading = store.write_latest.await_args.args[1]
        assert reading.timestamp == NOW_MS
        assert reading.received_at == NOW_MS


# ── Failure classification ──────────────────────────────


class TestFailureHandling:
    """Retriable failures ask for redelivery; others are absorbed."""

    async def test_transient_store_failure_retries(self, orchestrator, store):
        store.write_latest.side_effect = ConnectionError("redis unreachable")

        result = await orchestrator.process_message(_message(_reading(ph=7.0)))

        assert result.action == ErrorAction.RETRY
        assert result.failed == 1

    async def test_unknown_device_lookup_error_retries(self, orchestrator, devices):
        devices.get_device.side_effect = RuntimeError("unexpected")

        result = await orchestrator.process_message(_message(_reading(ph=7.0)))

        assert result.action == ErrorAction.RETRY

    async def test_permanent_lookup_error_skips_reading(self, orchestrator, devices, store):
        devices.get_device.side_effect = PermanentStoreError("bad row")

        result = await orchestrator.process_message(_message(_reading(ph=7.0)))

        assert result.action == ErrorAction.CONTINUE
        store.write_latest.assert_not_awaited()

    async def test_status_write_failure_absorbed(self, orchestrator, store):
        store.touch_device_status.side_effect = RuntimeError("status write failed")

        result = await orchestrator.process_message(_message(_reading(ph=7.0)))

        assert result.action == ErrorAction.CONTINUE
        assert result.stored == 1

    async def test_one_retriable_reading_retries_message(self, orchestrator, store):
        store.write_latest.side_effect = [None, TimeoutError("slow")]
        batch = {"readings": [_reading(ph=7.0), _reading(ph=7.1)]}

        result = await orchestrator.process_message(_message(batch))

        assert result.action == ErrorAction.RETRY
        assert (result.stored, result.failed) == (1, 1)


# ── Alerting ────────────────────────────────────────────


class TestAlerting:
    """Threshold and trend alerts, debounce and fan-out."""

    async def test_threshold_alert(self, orchestrator, alerts, dispatcher, aggregator, make_preference):
        result = await orchestrator.process_message(_message(_reading(turbidity=6.2)))

        assert result.alerts_created == 1
        (alert,) = _created_alerts(alerts)
        assert alert.parameter == "turbidity"
        assert alert.alert_type == "threshold"
        assert alert.severity == "Warning"
        assert alert.threshold_value == 5
        assert alert.device_name == "Main Lab Tap"
        assert alert.message == "[Main Lab, Floor 2] Turbidity has reached warning level: 6.20 NTU"
        assert alert.created_at == NOW

        recipients = [make_preference()]
        dispatcher.notify.assert_awaited_once_with(alert, recipients)
        aggregator.aggregate.assert_awaited_once_with(alert, recipients, DEFAULT_THRESHOLDS)

    async def test_trend_alert(self, orchestrator, store, alerts):
        store.get_history_window.return_value = [
            {"tds": 200, "timestamp": NOW_MS - 600_000},
            {"tds": 210, "timestamp": NOW_MS - 300_000},
        ]

        result = await orchestrator.process_message(_message(_reading(tds=250)))

        assert result.alerts_created == 1
        (alert,) = _created_alerts(alerts)
        assert alert.alert_type == "trend"
        assert alert.trend_direction == "increasing"
        assert alert.previous_value == 200
        assert alert.change_rate == 25.0
        assert alert.severity == "Warning"

    async def test_threshold_and_trend_independent(self, orchestrator, store, alerts):
        store.get_history_window.return_value = [{"ph": 7.0}, {"ph": 7.2}]

        result = await orchestrator.process_message(_message(_reading(ph=9.5)))

        assert result.alerts_created == 2
        assert {a.alert_type for a in _created_alerts(alerts)} == {"threshold", "trend"}

    async def test_debounce_cache_suppresses_repeat(self, orchestrator, alerts):
        await orchestrator.process_message(_message(_reading(ph=9.5)))
        second = await orchestrator.process_message(_message(_reading(ph=9.6), message_id="2-0"))

        assert second.alerts_created == 0
        assert alerts.create_if_absent.await_count == 1
        assert orchestrator.alert_cache.get("AG-001:ph") == _created_alerts(alerts)[0].alert_id

    async def test_store_duplicate_not_cached(self, orchestrator, alerts, dispatcher):
        alerts.create_if_absent.side_effect = None
        alerts.create_if_absent.return_value = AlertCreateResult(existing_alert_id="existing")

        first = await orchestrator.process_message(_message(_reading(ph=9.5)))
        await orchestrator.process_message(_message(_reading(ph=9.5), message_id="2-0"))

        assert first.alerts_created == 0
        assert alerts.create_if_absent.await_count == 2
        dispatcher.notify.assert_not_awaited()
        assert orchestrator.alert_cache.get("AG-001:ph") is None

    async def test_debounce_is_per_parameter(self, orchestrator, alerts):
        await orchestrator.process_message(_message(_reading(ph=9.5)))
        await orchestrator.process_message(_message(_reading(tds=1200), message_id="2-0"))

        assert [a.parameter for a in _created_alerts(alerts)] == ["ph", "tds"]

    async def test_injected_cache_shared(self, devices, store, thresholds, alerts, dispatcher, aggregator):
        cache = TTLCache(ttl_seconds=300, max_size=10)
        cache.set("AG-001:ph", "alert-earlier")
        orchestrator = IngestionOrchestrator(
            devices, store, thresholds, alerts, dispatcher, aggregator,
            alert_cache=cache, clock=lambda: NOW,
        )

        await orchestrator.process_message(_message(_reading(ph=9.5)))

        alerts.create_if_absent.assert_not_awaited()

    async def test_injected_empty_cache_used(
        self, devices, store, thresholds, alerts, dispatcher, aggregator
    ):
        cache = TTLCache(ttl_seconds=300, max_size=10)
        orchestrator = IngestionOrchestrator(
            devices, store, thresholds, alerts, dispatcher, aggregator,
            alert_cache=cache, clock=lambda: NOW,
        )

        await orchestrator.process_message(_message(_reading(ph=9.5)))

        assert orchestrator.alert_cache is cache
        assert cache.get("AG-001:ph") == _created_alerts(alerts)[0].alert_id

    async def test_trend_window_records_alert_id(self, orchestrator, store, alerts):
        store.get_history_window.return_value = [{"ph": 7.0}, {"ph": 7.2}]

        await orchestrator.process_message(_message(_reading(ph=9.5)))

        trend = next(a for a in _created_alerts(alerts) if a.alert_type == "trend")
        assert orchestrator.alert_cache.get("AG-001:ph:trend") == trend.alert_id

    async def test_recipient_resolution_failure_still_creates(
        self, orchestrator, alerts, dispatcher, aggregator
    ):
        dispatcher.resolve_recipients.side_effect = ConnectionError("preferences down")

        result = await orchestrator.process_message(_message(_reading(ph=9.5)))

        assert result.action == ErrorAction.CONTINUE
        assert result.alerts_created == 1
        alert = _created_alerts(alerts)[0]
        dispatcher.notify.assert_awaited_once_with(alert, [])
        aggregator.aggregate.assert_awaited_once_with(alert, [], DEFAULT_THRESHOLDS)

    async def test_alert_store_failure_retries(self, orchestrator, alerts):
        alerts.create_if_absent.side_effect = ConnectionError("postgres unreachable")

        result = await orchestrator.process_message(_message(_reading(ph=9.5)))

        assert result.action == ErrorAction.RETRY
        assert orchestrator.alert_cache.get("AG-001:ph") is None


# ── Factory ─────────────────────────────────────────────


class TestCreateOrchestrator:
    """Factory wiring of caches from IngestionConfig."""

    def test_counter_cache_follows_config(self, fake_db):
        config = IngestionConfig(counter_cache_size=7, counter_ttl_seconds=123)

        orchestrator = create_orchestrator(fake_db, AsyncMock(), AsyncMock(), config=config)

        stats = orchestrator.store.counter_cache.stats()
        assert stats.max_size == 7
        assert stats.ttl_seconds == 123.0

    def test_alert_cache_follows_config(self, fake_db):
        config = IngestionConfig(alert_cache_size=5, alert_cooldown_seconds=60)

        orchestrator = create_orchestrator(fake_db, AsyncMock(), AsyncMock(), config=config)

        stats = orchestrator.alert_cache.stats()
        assert (stats.max_size, stats.ttl_seconds) == (5, 60.0)
