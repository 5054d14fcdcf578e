"""Reclaim and retry settings for Redis Streams queues."""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Configuration for queue message reclaim behavior.

    Attributes:
        idle_timeout_ms: An unacknowledged message idle this long is
            reclaimed and redelivered. RETRY outcomes rely on this for
            their redelivery delay.
        max_delivery_attempts: Deliveries after which a message is moved
            to the dead letter stream.
        backoff_base_delay: First delay after a consume error (seconds).
        backoff_max_delay: Cap on consume error delays (seconds).
    """

    idle_timeout_ms: int = 30_000
    max_delivery_attempts: int = 5
    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0
