"""
Prometheus metrics for monitoring the telemetry pipeline.

Defines and exposes metrics for:
- Sensor message and reading outcomes
- Processing latency
- Alert creation and deduplication
- Notification delivery and circuit breaker state
- Digest delivery cycles
- Queue reclaim / dead letter activity

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from aquaguard.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class MetricsCollector:
    """
    Prometheus metrics collector for the aquaguard pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.readings_processed.labels(outcome="stored").inc()
        metrics.processing_latency.labels(stage="message").observe(0.05)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Ingestion
        self.messages_processed = Counter(
            "aquaguard_messages_processed_total",
            "Total inbound sensor messages processed",
            ["action"],  # continue, skip, retry
        )

        self.readings_processed = Counter(
            "aquaguard_readings_processed_total",
            "Total sensor readings processed",
            ["outcome"],  # stored, invalid, unknown_device, unregistered, failed
        )

        self.processing_latency = Histogram(
            "aquaguard_processing_latency_seconds",
            "Time spent processing pipeline stages",
            ["stage"],  # message, reading, digest_cycle
            buckets=LATENCY_BUCKETS,
        )

        self.history_appends = Counter(
            "aquaguard_history_appends_total",
            "Readings appended to the sampled history log",
        )

        self.device_status_writes = Counter(
            "aquaguard_device_status_writes_total",
            "Device status writes",
            ["status"],  # online, offline
        )

        # Alerts
        self.alerts_created = Counter(
            "aquaguard_alerts_created_total",
            "Total alerts created",
            ["parameter", "alert_type", "severity"],
        )

        self.alerts_deduplicated = Counter(
            "aquaguard_alerts_deduplicated_total",
            "Alert candidates suppressed as duplicates",
            ["stage"],  # cache, store
        )

        # Notifications
        self.notifications_sent = Counter(
            "aquaguard_notifications_sent_total",
            "Notification delivery attempts by outcome",
            ["outcome"],  # success, failure, circuit_open
        )

        self.circuit_state = Gauge(
            "aquaguard_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=half_open, 2=open)",
            ["name"],
        )

        # Digests
        self.digest_items_added = Counter(
            "aquaguard_digest_items_added_total",
            "Alert items appended to recipient digests",
            ["category"],
        )

        self.digests_sent = Counter(
            "aquaguard_digests_sent_total",
            "Digest delivery attempts by outcome",
            ["outcome"],  # success, failure
        )

        # Queue metrics
        self.queue_pending = Gauge(
            "aquaguard_queue_pending",
            "Number of pending (unacknowledged) messages",
            ["queue"],
        )

        self.pending_reclaimed = Counter(
            "aquaguard_queue_pending_reclaimed_total",
            "Total messages reclaimed from pending state",
            ["queue"],
        )

        self.dlq_max_retries = Counter(
            "aquaguard_queue_dlq_max_retries_total",
            "Total messages moved to DLQ due to max retries exceeded",
            ["queue"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info("Prometheus metrics server started on port %d", port)

    # Convenience methods

    def record_message(self, action: str, latency: float | None = None) -> None:
        """
        Record a processed inbound message.

        Args:
            action: Final ErrorAction value for the message
            latency: Processing time in seconds
        """
        self.messages_processed.labels(action=action).inc()
        if latency is not None:
            self.processing_latency.labels(stage="message").observe(latency)

    def record_reading(self, outcome: str) -> None:
        """Record a single reading outcome."""
        self.readings_processed.labels(outcome=outcome).inc()

    def record_alert_created(
        self,
        parameter: str,
        alert_type: str,
        severity: str,
    ) -> None:
        """Record a newly persisted alert."""
        self.alerts_created.labels(
            parameter=parameter,
            alert_type=alert_type,
            severity=severity,
        ).inc()

    def record_alert_duplicate(self, stage: str) -> None:
        """
        Record a suppressed alert candidate.

        Args:
            stage: "cache" for debounce hits, "store" for transactional dedup
        """
        self.alerts_deduplicated.labels(stage=stage).inc()

    def record_notification(self, outcome: str, count: int = 1) -> None:
        """Record notification delivery outcomes."""
        if count > 0:
            self.notifications_sent.labels(outcome=outcome).inc(count)

    def set_circuit_state(self, name: str, state: str) -> None:
        """
        Export circuit breaker state.

        Args:
            name: Breaker name
            state: CircuitState value (closed, half_open, open)
        """
        self.circuit_state.labels(name=name).set(_CIRCUIT_STATE_VALUES.get(state, 0))

    def record_digest_cycle(self, sent: int, failed: int, latency: float) -> None:
        """
        Record digest scheduler cycle metrics.

        Args:
            sent: Digests delivered
            failed: Digests whose delivery failed
            latency: Cycle duration in seconds
        """
        if sent:
            self.digests_sent.labels(outcome="success").inc(sent)
        if failed:
            self.digests_sent.labels(outcome="failure").inc(failed)
        if latency > 0:
            self.processing_latency.labels(stage="digest_cycle").observe(latency)

    def set_queue_pending(self, queue: str, pending: int) -> None:
        """Set pending message gauge for a queue."""
        self.queue_pending.labels(queue=queue).set(pending)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
