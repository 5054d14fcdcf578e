"""Failure-rate circuit breaker for wrapping any async callable.

State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

- CLOSED: calls pass through; successes and failures are counted since
  the last transition. Once at least ``minimum_calls`` have completed and
  the failure rate reaches ``failure_threshold_pct`` the circuit opens.
- OPEN: calls are rejected with CircuitOpenError without invoking the
  callable. After ``reset_timeout`` seconds the next call moves the
  circuit to HALF_OPEN.
- HALF_OPEN: calls pass through as probes. ``half_open_calls`` successes
  close the circuit; any failure reopens it immediately.

Every call races the callable against ``timeout``; a timeout counts as a
failure. Counters reset on every transition.

Usage:
    breaker = CircuitBreaker(name="email")
    try:
        await breaker.call(sender.send, to, subject, body)
    except CircuitOpenError:
        # fast local failure
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, TypeVar

from aquaguard.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""


class CircuitTimeoutError(TimeoutError):
    """Raised when the wrapped call exceeds the breaker timeout."""


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Tuning knobs for a CircuitBreaker.

    Attributes:
        timeout: Per-call deadline in seconds.
        failure_threshold_pct: Failure rate (0-100) that opens the circuit.
        minimum_calls: Calls required before the rate is evaluated.
        reset_timeout: Seconds spent OPEN before probing.
        half_open_calls: Probe successes required to close again.
    """

    timeout: float = 5.0
    failure_threshold_pct: float = 50.0
    minimum_calls: int = 5
    reset_timeout: float = 30.0
    half_open_calls: int = 3


@dataclass(frozen=True)
class CircuitStats:
    """Snapshot of breaker state for logs and health output."""

    name: str
    state: CircuitState
    successes: int
    failures: int
    failure_rate: float
    state_changed_at: float


class CircuitBreaker:
    """Wraps async callables with failure-rate circuit breaker protection.

    Args:
        config: Thresholds and timeouts.
        name: Name used in logs, errors and the state gauge.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "circuit_breaker",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._successes = 0
        self._failures = 0
        self._state_changed_at = clock()
        get_metrics().set_circuit_state(self._name, self._state.value)

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    def stats(self) -> CircuitStats:
        total = self._successes + self._failures
        return CircuitStats(
            name=self._name,
            state=self._state,
            successes=self._successes,
            failures=self._failures,
            failure_rate=(self._failures / total * 100) if total else 0.0,
            state_changed_at=self._state_changed_at,
        )

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute an async function through the circuit breaker.

        Args:
            fn: Async callable to execute.
            *args: Positional arguments for fn.
            **kwargs: Keyword arguments for fn.

        Returns:
            Result from fn.

        Raises:
            CircuitOpenError: Circuit is open and the reset timeout has
                not elapsed.
            CircuitTimeoutError: fn did not finish within the timeout.
        """
        if self._state == CircuitState.OPEN:
            if self._clock() - self._state_changed_at >= self._config.reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
            else:
                raise CircuitOpenError(f"Circuit breaker {self._name} is OPEN")

        try:
            result = await asyncio.wait_for(
                fn(*args, **kwargs), timeout=self._config.timeout
            )
        except asyncio.TimeoutError:
            self._record_failure()
            raise CircuitTimeoutError(
                f"Circuit breaker {self._name}: call exceeded "
                f"{self._config.timeout:.1f}s"
            ) from None
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def force_open(self) -> None:
        """Open the circuit regardless of counters (ops override)."""
        self._transition(CircuitState.OPEN)

    def force_close(self) -> None:
        """Close the circuit regardless of counters (ops override)."""
        self._transition(CircuitState.CLOSED)

    def _record_success(self) -> None:
        self._successes += 1
        if (
            self._state == CircuitState.HALF_OPEN
            and self._successes >= self._config.half_open_calls
        ):
            self._transition(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        self._failures += 1

        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return

        if self._state == CircuitState.CLOSED:
            total = self._successes + self._failures
            rate = self._failures / total * 100
            if (
                total >= self._config.minimum_calls
                and rate >= self._config.failure_threshold_pct
            ):
                logger.warning(
                    "Circuit breaker %s: failure rate %.1f%% over %d calls",
                    self._name, rate, total,
                )
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._state_changed_at = self._clock()
        self._successes = 0
        self._failures = 0

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker %s: %s → %s",
            self._name, old_state.name, new_state.name,
        )
        get_metrics().set_circuit_state(self._name, new_state.value)
