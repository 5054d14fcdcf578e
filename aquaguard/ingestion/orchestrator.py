"""
Ingestion orchestrator - processes one inbound sensor message end to end.

For each message:
1. Validates the device id and batch size (SKIP on failure)
2. Processes every reading concurrently; one bad reading never aborts
   its siblings
3. Per reading: validate, normalize timestamp, look up the device,
   touch its status, write latest + sampled history, then evaluate every
   present parameter for threshold and trend alerts
4. Creates alerts through the transactional repository, then notifies
   recipients and feeds their digests for newly created alerts

The message outcome is an explicit ErrorAction. RETRY means at least one
reading failed with a retriable error and the message should be
redelivered; the orchestrator itself never raises to the queue runtime.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis
import structlog

from aquaguard.alerts.content import generate_alert_content
from aquaguard.alerts.repository import AlertRepository
from aquaguard.alerts.schemas import Alert
from aquaguard.devices.repository import DeviceRepository
from aquaguard.devices.schemas import DeviceFact
from aquaguard.digests.aggregator import DigestAggregator
from aquaguard.digests.config import DigestConfig
from aquaguard.digests.repository import DigestRepository
from aquaguard.evaluation.evaluator import analyze_trend, check_threshold
from aquaguard.evaluation.repository import ThresholdConfigRepository
from aquaguard.evaluation.schemas import ThresholdConfig
from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.schemas import SensorMessage, SensorReading
from aquaguard.ingestion.validation import (
    parse_reading,
    validate_batch_size,
    validate_device_id,
)
from aquaguard.notifications.config import NotificationConfig
from aquaguard.notifications.dispatcher import NotificationDispatcher
from aquaguard.notifications.preferences import PreferenceRepository
from aquaguard.notifications.schemas import NotificationPreference
from aquaguard.notifications.senders import OutboundSender
from aquaguard.observability.metrics import get_metrics
from aquaguard.resilience.cache import TTLCache
from aquaguard.resilience.errors import (
    ErrorAction,
    ReadingValidationError,
    classify,
    execute_with_classification,
)
from aquaguard.storage.database import Database
from aquaguard.telemetry.store import TelemetryStore

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReadingOutcome:
    """Result of processing one reading.

    ``status`` is one of: stored, unknown_device, unregistered.
    """

    status: str
    alerts_created: int = 0


@dataclass
class ProcessingResult:
    """Outcome of one inbound message."""

    message_id: str
    device_id: str | None
    action: ErrorAction
    readings: int = 0
    stored: int = 0
    failed: int = 0
    alerts_created: int = 0
    reason: str | None = None


class IngestionOrchestrator:
    """
    Wires validation, storage, evaluation, alerting and notification
    for inbound sensor messages.

    The debounce cache is owned by the orchestrator and injectable; it only
    saves work. Deduplication is enforced by AlertRepository.create_if_absent.

    Usage:
        orchestrator = create_orchestrator(database, redis_client, sender)
        result = await orchestrator.process_message(message)
        if result.action != ErrorAction.RETRY:
            await queue.ack(message.message_id)
    """

    def __init__(
        self,
        devices: DeviceRepository,
        store: TelemetryStore,
        thresholds: ThresholdConfigRepository,
        alerts: AlertRepository,
        dispatcher: NotificationDispatcher,
        aggregator: DigestAggregator,
        config: IngestionConfig | None = None,
        alert_cache: TTLCache[str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or IngestionConfig()
        self._devices = devices
        self._store = store
        self._thresholds = thresholds
        self._alerts = alerts
        self._dispatcher = dispatcher
        self._aggregator = aggregator
        if alert_cache is None:
            alert_cache = TTLCache(
                ttl_seconds=self._config.alert_cooldown_seconds,
                max_size=self._config.alert_cache_size,
            )
        # Debounce keys map to the id of the alert that opened the window
        self._alert_cache: TTLCache[str] = alert_cache
        self._clock = clock

    @property
    def alert_cache(self) -> TTLCache[str]:
        return self._alert_cache

    @property
    def store(self) -> TelemetryStore:
        return self._store

    async def process_message(self, message: SensorMessage) -> ProcessingResult:
        """Process one inbound message and return its outcome. Never raises."""
        start_time = time.monotonic()
        result = await self._process(message)
        latency = time.monotonic() - start_time

        get_metrics().record_message(result.action.value, latency)
        log = logger.warning if result.action == ErrorAction.RETRY else logger.debug
        log(
            "Message processed",
            message_id=result.message_id,
            device_id=result.device_id,
            action=result.action.value,
            readings=result.readings,
            stored=result.stored,
            failed=result.failed,
            alerts_created=result.alerts_created,
            reason=result.reason,
            latency_ms=round(latency * 1000, 2),
        )
        return result

    async def _process(self, message: SensorMessage) -> ProcessingResult:
        device_id = (message.device_id or "").strip()
        config = self._config

        if not validate_device_id(device_id, config.max_device_id_length):
            return ProcessingResult(
                message.message_id, message.device_id, ErrorAction.SKIP,
                reason="invalid device id",
            )

        payloads = message.raw_readings()
        if not payloads:
            return ProcessingResult(
                message.message_id, device_id, ErrorAction.SKIP, reason="empty message",
            )
        if not validate_batch_size(len(payloads), config.max_batch_size):
            return ProcessingResult(
                message.message_id, device_id, ErrorAction.SKIP,
                readings=len(payloads),
                reason=f"batch of {len(payloads)} exceeds {config.max_batch_size}",
            )

        outcomes = await asyncio.gather(
            *(self._process_reading(device_id, payload) for payload in payloads),
            return_exceptions=True,
        )

        result = ProcessingResult(
            message.message_id, device_id, ErrorAction.CONTINUE, readings=len(payloads),
        )
        metrics = get_metrics()
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                if isinstance(outcome, ReadingValidationError):
                    metrics.record_reading("invalid")
                    logger.info("Reading rejected", device_id=device_id, error=str(outcome))
                    continue
                metrics.record_reading("failed")
                action = classify(
                    outcome,
                    {"operation": "process_reading", "device_id": device_id, "index": index},
                )
                if action == ErrorAction.RETRY:
                    result.action = ErrorAction.RETRY
                continue

            metrics.record_reading(outcome.status)
            if outcome.status == "stored":
                result.stored += 1
            result.alerts_created += outcome.alerts_created

        return result

    async def _process_reading(self, device_id: str, payload: Any) -> ReadingOutcome:
        now = self._clock()
        now_ms = int(now.timestamp() * 1000)
        config = self._config

        reading = parse_reading(device_id, payload, now_ms, config.max_timestamp_drift_ms)

        device = await execute_with_classification(
            lambda: self._devices.get_device(device_id),
            {"operation": "get_device", "device_id": device_id},
            default_action=ErrorAction.RETRY,
        )
        if device is None:
            logger.warning("Reading from unknown device", device_id=device_id)
            return ReadingOutcome("unknown_device")

        await execute_with_classification(
            lambda: self._store.touch_device_status(device, config.status_throttle_seconds, now),
            {"operation": "touch_device_status", "device_id": device_id},
        )

        if not device.is_registered:
            logger.info("Device has no location, reading not stored", device_id=device_id)
            return ReadingOutcome("unregistered")

        await self._store.write_latest(device_id, reading)

        thresholds = await self._thresholds.get_threshold_config()
        since = now - timedelta(minutes=thresholds.trend_detection.time_window_minutes)
        history = await self._store.get_history_window(
            device_id, int(since.timestamp() * 1000), config.trend_history_limit,
        )

        await self._store.write_history_sampled(device_id, reading, config.history_interval)

        created = 0
        for parameter in reading.present_parameters():
            created += await self._evaluate_parameter(
                device, reading, parameter, thresholds, history
            )
        return ReadingOutcome("stored", created)

    async def _evaluate_parameter(
        self,
        device: DeviceFact,
        reading: SensorReading,
        parameter: str,
        thresholds: ThresholdConfig,
        history: list[dict[str, Any]],
    ) -> int:
        value = reading.value_of(parameter)
        created = 0

        threshold_key = f"{device.device_id}:{parameter}"
        if self._debounced(threshold_key):
            get_metrics().record_alert_duplicate("cache")
        else:
            check = check_threshold(parameter, value, thresholds)
            if check.exceeded:
                alert = self._build_alert(
                    device, parameter, value, "threshold", check.severity,
                    threshold_value=check.threshold,
                )
                raised = await self._raise_alert(alert, thresholds)
                if raised is not None:
                    self._alert_cache.set(threshold_key, raised.alert_id)
                    created += 1

        trend_key = f"{device.device_id}:{parameter}:trend"
        if self._debounced(trend_key):
            get_metrics().record_alert_duplicate("cache")
        else:
            trend = analyze_trend(device.device_id, parameter, value, thresholds, history)
            if trend is not None and trend.has_trend:
                alert = self._build_alert(
                    device, parameter, value, "trend", trend.severity,
                    trend_direction=trend.direction,
                    previous_value=trend.previous_value,
                    change_rate=round(trend.change_rate, 2),
                )
                raised = await self._raise_alert(alert, thresholds)
                if raised is not None:
                    self._alert_cache.set(trend_key, raised.alert_id)
                    created += 1

        return created

    def _debounced(self, key: str) -> bool:
        return self._alert_cache.get(key) is not None

    def _build_alert(
        self,
        device: DeviceFact,
        parameter: str,
        value: float,
        alert_type: str,
        severity: str,
        **details: Any,
    ) -> Alert:
        building = device.location.building
        floor = device.location.floor
        content = generate_alert_content(
            parameter,
            value,
            severity,
            alert_type,
            trend_direction=details.get("trend_direction"),
            building=building,
            floor=floor,
        )
        return Alert(
            device_id=device.device_id,
            device_name=device.name,
            parameter=parameter,
            alert_type=alert_type,
            severity=severity,
            value=value,
            message=content.message,
            recommended_action=content.recommended_action,
            building=building,
            floor=floor,
            created_at=self._clock(),
            **details,
        )

    async def _raise_alert(self, alert: Alert, thresholds: ThresholdConfig) -> Alert | None:
        """Persist an alert candidate; notify and aggregate if it was created.

        Returns:
            The created alert, or None if an active one already existed.
        """
        metrics = get_metrics()
        outcome = await self._alerts.create_if_absent(alert)
        if not outcome.created:
            metrics.record_alert_duplicate("store")
            logger.debug(
                "Duplicate alert suppressed",
                dedup_key=alert.dedup_key,
                existing_alert_id=outcome.existing_alert_id,
            )
            return None

        created = outcome.alert
        metrics.record_alert_created(created.parameter, created.alert_type, created.severity)
        logger.info(
            "Alert created",
            alert_id=created.alert_id,
            device_id=created.device_id,
            parameter=created.parameter,
            alert_type=created.alert_type,
            severity=created.severity,
            value=created.value,
        )

        recipients = await self._resolve_recipients(created)
        await self._dispatcher.notify(created, recipients)
        await self._aggregator.aggregate(created, recipients, thresholds)
        return created

    async def _resolve_recipients(self, alert: Alert) -> list[NotificationPreference]:
        # The alert already exists; a failure here must not trigger redelivery.
        try:
            return await self._dispatcher.resolve_recipients(alert)
        except Exception as e:
            logger.error(
                "Failed to resolve recipients", alert_id=alert.alert_id, error=str(e),
            )
            return []


def create_orchestrator(
    database: Database,
    redis_client: redis.Redis,
    sender: OutboundSender,
    config: IngestionConfig | None = None,
    notification_config: NotificationConfig | None = None,
    digest_config: DigestConfig | None = None,
) -> IngestionOrchestrator:
    """Build an orchestrator with its repositories, store and caches."""
    config = config or IngestionConfig()
    devices = DeviceRepository(database)
    alerts = AlertRepository(database)

    store = TelemetryStore(
        redis_client,
        devices,
        counter_cache=TTLCache(
            ttl_seconds=config.counter_ttl_seconds,
            max_size=config.counter_cache_size,
        ),
        history_max_length=config.history_max_length,
    )
    dispatcher = NotificationDispatcher(
        sender,
        PreferenceRepository(database),
        alerts,
        config=notification_config,
    )
    return IngestionOrchestrator(
        devices=devices,
        store=store,
        thresholds=ThresholdConfigRepository(
            database, cache_seconds=config.threshold_cache_seconds
        ),
        alerts=alerts,
        dispatcher=dispatcher,
        aggregator=DigestAggregator(DigestRepository(database), digest_config),
        config=config,
    )
