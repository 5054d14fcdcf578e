"""Notification dispatch configuration.

All settings can be overridden via ``NOTIFICATIONS_*`` environment
variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from aquaguard.resilience.circuit_breaker import CircuitBreakerConfig


class NotificationConfig(BaseSettings):
    """Configuration for recipient resolution and guarded delivery."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    breaker_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Per-send deadline enforced by the circuit breaker",
    )
    breaker_failure_threshold_pct: float = Field(
        default=50.0,
        gt=0.0,
        le=100.0,
        description="Failure rate that opens the circuit",
    )
    breaker_minimum_calls: int = Field(
        default=5,
        ge=1,
        description="Calls observed before the failure rate is evaluated",
    )
    breaker_reset_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        description="Seconds the circuit stays open before probing",
    )
    breaker_half_open_calls: int = Field(
        default=3,
        ge=1,
        description="Successful probes required to close the circuit",
    )
    quiet_hours_timezone: str = Field(
        default="UTC",
        description="IANA timezone in which quiet hours are evaluated",
    )
    quiet_hours_overnight: bool = Field(
        default=False,
        description=(
            "Treat windows whose start is after their end (e.g. 22:00-06:00) "
            "as wrapping past midnight"
        ),
    )
    max_concurrent_sends: int = Field(default=10, ge=1, le=100)

    def breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            timeout=self.breaker_timeout_seconds,
            failure_threshold_pct=self.breaker_failure_threshold_pct,
            minimum_calls=self.breaker_minimum_calls,
            reset_timeout=self.breaker_reset_timeout_seconds,
            half_open_calls=self.breaker_half_open_calls,
        )
