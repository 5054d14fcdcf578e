"""
Redis Streams queue abstractions with automatic pending message reclaim.

Classes:
    BaseRedisQueue: Abstract base class for Redis Streams queues
    StreamConfig: Names and limits for a stream
    QueueConfig: Reclaim and retry settings
    ExponentialBackoff: Delay calculation for consume error recovery
"""

from aquaguard.queues.backoff import ExponentialBackoff
from aquaguard.queues.base import BaseRedisQueue, StreamConfig
from aquaguard.queues.config import QueueConfig

__all__ = ["BaseRedisQueue", "StreamConfig", "QueueConfig", "ExponentialBackoff"]
