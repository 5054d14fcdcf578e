"""Error taxonomy and classification for the ingestion pipeline.

Every failure inside the pipeline is mapped to one of three actions:

- RETRY: transient (unavailable, timeout, network). The inbound message
  is left unacknowledged so the queue redelivers it.
- SKIP: permanent (not found, invalid argument, permission). Logged and
  dropped; retrying would fail the same way.
- CONTINUE: anything else. Logged; processing proceeds.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, TypeVar

import asyncpg
import httpx
import redis.exceptions

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorAction(str, enum.Enum):
    """What the caller should do about a failure."""

    RETRY = "retry"
    SKIP = "skip"
    CONTINUE = "continue"


class AquaGuardError(Exception):
    """Base class for pipeline errors."""


class ReadingValidationError(AquaGuardError, ValueError):
    """A sensor reading failed validation. Never retried."""


class TransientStoreError(AquaGuardError):
    """A store was temporarily unavailable. Safe to retry."""


class PermanentStoreError(AquaGuardError):
    """A store rejected the operation in a way a retry cannot fix."""


class NotificationError(AquaGuardError):
    """Outbound delivery failed. Never escalated past the dispatcher."""


class InvalidTransitionError(AquaGuardError):
    """An alert or digest status change violated its state machine."""


RETRIABLE_CODES: frozenset[str] = frozenset({
    "unavailable",
    "deadline-exceeded",
    "resource-exhausted",
    "aborted",
    "internal",
})

PERMANENT_CODES: frozenset[str] = frozenset({
    "not-found",
    "already-exists",
    "permission-denied",
    "invalid-argument",
    "failed-precondition",
    "out-of-range",
    "unauthenticated",
})

_RETRIABLE_MESSAGE_HINTS = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "econnrefused",
    "unavailable",
)

_RETRIABLE_TYPES: tuple[type[BaseException], ...] = (
    TransientStoreError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    redis.exceptions.BusyLoadingError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.QueryCanceledError,
    httpx.TransportError,
)

_PERMANENT_TYPES: tuple[type[BaseException], ...] = (
    ReadingValidationError,
    PermanentStoreError,
    InvalidTransitionError,
    asyncpg.exceptions.IntegrityConstraintViolationError,
    asyncpg.exceptions.DataError,
    asyncpg.exceptions.InsufficientPrivilegeError,
    PermissionError,
    LookupError,
    ValueError,
)


def _normalize_code(code: Any) -> str | None:
    if code is None:
        return None
    name = getattr(code, "name", code)
    return str(name).strip().lower().replace("_", "-")


def _classify(error: BaseException) -> ErrorAction:
    if isinstance(error, _RETRIABLE_TYPES):
        return ErrorAction.RETRY
    if isinstance(error, _PERMANENT_TYPES):
        return ErrorAction.SKIP

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429 or status >= 500:
            return ErrorAction.RETRY
        return ErrorAction.SKIP

    code = _normalize_code(getattr(error, "code", None))
    if code in RETRIABLE_CODES:
        return ErrorAction.RETRY
    if code in PERMANENT_CODES:
        return ErrorAction.SKIP

    message = str(error).lower()
    if any(hint in message for hint in _RETRIABLE_MESSAGE_HINTS):
        return ErrorAction.RETRY

    return ErrorAction.CONTINUE


def classify(error: BaseException, context: dict[str, Any] | None = None) -> ErrorAction:
    """Classify an error and log the decision.

    Args:
        error: The exception raised by an operation.
        context: Operation name and identifiers included in the log line.

    Returns:
        The ErrorAction for the error.
    """
    action = _classify(error)
    context = context or {}
    log = logger.warning if action == ErrorAction.RETRY else logger.error
    log(
        "Error classified as %s in %s: %s: %s %s",
        action.value,
        context.get("operation", "unknown"),
        type(error).__name__,
        error,
        {k: v for k, v in context.items() if k != "operation"},
    )
    return action


async def execute_with_classification(
    operation: Callable[[], Awaitable[T]],
    context: dict[str, Any],
    default_action: ErrorAction = ErrorAction.CONTINUE,
) -> T | None:
    """Run an operation, absorbing failures unless they must be retried.

    A CONTINUE classification is replaced by ``default_action`` so callers
    can escalate errors of unknown kind (e.g. device lookups default to
    RETRY); an escalated error is re-raised as TransientStoreError so
    later classification keeps the RETRY. Errors already classified as
    RETRY are re-raised unchanged. Otherwise the failure is logged and
    ``None`` is returned.

    Args:
        operation: Zero-argument coroutine function.
        context: Logging context; should include an ``operation`` name.
        default_action: Action applied when the error is unclassified.
    """
    try:
        return await operation()
    except Exception as e:
        action = classify(e, context)
        if action == ErrorAction.CONTINUE:
            if default_action == ErrorAction.RETRY:
                raise TransientStoreError(
                    f"{context.get('operation', 'operation')} failed: {e}"
                ) from e
            action = default_action
        if action == ErrorAction.RETRY:
            raise
        logger.info(
            "Absorbed %s failure in %s (action=%s)",
            type(e).__name__,
            context.get("operation", "unknown"),
            action.value,
        )
        return None
