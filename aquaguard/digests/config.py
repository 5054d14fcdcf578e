"""Digest aggregation and scheduling configuration.

All settings can be overridden via ``DIGESTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DigestConfig(BaseSettings):
    """Configuration for per-recipient alert digests."""

    model_config = SettingsConfigDict(
        env_prefix="DIGESTS_",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Aggregate new alerts into digests")
    cooldown_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="Minimum time between two sends of the same digest",
    )
    max_send_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Sends (successful or not) after which a digest is retired",
    )
    max_items: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Items kept per digest; the oldest are dropped beyond this",
    )
    batch_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Digests processed per scheduler cycle",
    )
    schedule_interval_hours: float = Field(
        default=6.0,
        gt=0.0,
        description="Interval between scheduler cycles",
    )
