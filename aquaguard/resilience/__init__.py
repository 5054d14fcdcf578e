"""Resilience primitives: TTL cache, circuit breaker, error classification."""

from aquaguard.resilience.cache import CacheStats, TTLCache
from aquaguard.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    CircuitTimeoutError,
)
from aquaguard.resilience.errors import (
    AquaGuardError,
    ErrorAction,
    InvalidTransitionError,
    NotificationError,
    PermanentStoreError,
    ReadingValidationError,
    TransientStoreError,
    classify,
    execute_with_classification,
)

__all__ = [
    "TTLCache",
    "CacheStats",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "CircuitTimeoutError",
    "AquaGuardError",
    "ErrorAction",
    "InvalidTransitionError",
    "NotificationError",
    "PermanentStoreError",
    "ReadingValidationError",
    "TransientStoreError",
    "classify",
    "execute_with_classification",
]
