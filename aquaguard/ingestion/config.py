"""Ingestion configuration.

Controls validation limits, status throttling, history sampling and the
alert debounce window. All settings can be overridden via ``INGEST_*``
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionConfig(BaseSettings):
    """Configuration for sensor message ingestion."""

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        case_sensitive=False,
        extra="ignore",
    )

    # Stream
    stream_name: str = Field(default="sensor_readings", description="Redis stream name")
    consumer_group: str = Field(default="ingestion_workers", description="Consumer group name")
    dlq_stream_name: str = Field(default="sensor_readings:dlq", description="Dead letter stream")
    max_stream_length: int = Field(default=100_000, ge=1000)
    idle_timeout_ms: int = Field(
        default=30_000,
        ge=1000,
        description="Pending messages idle this long are reclaimed for redelivery",
    )
    max_delivery_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Deliveries before a message is moved to the DLQ",
    )
    worker_batch_size: int = Field(default=16, ge=1, le=256)
    worker_batch_timeout: float = Field(default=2.0, gt=0.0, le=60.0)

    # Validation
    max_batch_size: int = Field(
        default=100,
        ge=1,
        description="Maximum readings per inbound message",
    )
    max_device_id_length: int = Field(default=128, ge=1, le=1024)
    max_timestamp_drift_ms: int = Field(
        default=3_600_000,
        ge=0,
        description="Client timestamps further than this from server time are replaced",
    )

    # Persistence
    history_interval: int = Field(
        default=5,
        ge=1,
        description="Append every Nth reading per device to the history log",
    )
    history_max_length: int = Field(
        default=10_000,
        ge=100,
        description="History entries retained per device",
    )
    status_throttle_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="Minimum interval between device status writes",
    )
    counter_ttl_seconds: float = Field(default=86_400.0, gt=0.0)
    counter_cache_size: int = Field(default=10_000, ge=1)

    # Alerting
    alert_cooldown_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Debounce window for repeated alert candidates",
    )
    alert_cache_size: int = Field(default=1000, ge=1)
    trend_history_limit: int = Field(
        default=10,
        ge=2,
        description="Readings loaded from the history window for trend analysis",
    )
    threshold_cache_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="How long loaded threshold configuration is reused",
    )

    # Presence
    offline_check_interval_minutes: int = Field(
        default=5,
        ge=1,
        description="Offline sweep interval; devices silent for twice this are offline",
    )
