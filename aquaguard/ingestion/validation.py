"""Input validation for inbound sensor messages.

Pure functions; nothing here touches a store. Failures surface as
``False`` or as ReadingValidationError, which the orchestrator treats as
SKIP (logged, never retried).
"""

import math
import re
from collections.abc import Mapping
from typing import Any

from aquaguard.ingestion.schemas import SensorReading
from aquaguard.resilience.errors import ReadingValidationError

DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

DEFAULT_MAX_DEVICE_ID_LENGTH = 128

# Inclusive physical ranges per parameter
READING_BOUNDS: dict[str, tuple[float, float]] = {
    "turbidity": (0.0, 1000.0),
    "tds": (0.0, 10000.0),
    "ph": (0.0, 14.0),
}


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_device_id(
    device_id: str | None,
    max_length: int = DEFAULT_MAX_DEVICE_ID_LENGTH,
) -> bool:
    """True iff the id is non-empty, short enough and alphanumeric/``_``/``-``."""
    if not device_id or len(device_id) > max_length:
        return False
    return DEVICE_ID_PATTERN.fullmatch(device_id) is not None


def reading_errors(payload: Any) -> list[str]:
    """Return a description of every invalid field in a raw reading.

    Absent (or null) parameters are not errors; partial readings are
    allowed.
    """
    if not isinstance(payload, Mapping):
        return [f"reading must be an object, got {type(payload).__name__}"]

    errors: list[str] = []
    for name, (low, high) in READING_BOUNDS.items():
        value = payload.get(name)
        if value is None:
            continue
        if not _is_number(value):
            errors.append(f"{name} must be a number, got {value!r}")
        elif not low <= value <= high:
            errors.append(f"{name}={value} outside [{low:g}, {high:g}]")
    return errors


def validate_reading(payload: Any) -> bool:
    """True iff every present parameter is numeric and within bounds."""
    return not reading_errors(payload)


def normalize_timestamp(timestamp: Any, now_ms: int, max_drift_ms: int) -> int:
    """Return ``timestamp`` if it is within ``max_drift_ms`` of now, else now.

    Missing or non-numeric timestamps are replaced as well. This never
    rejects a reading.
    """
    if not _is_number(timestamp):
        return now_ms
    if abs(timestamp - now_ms) > max_drift_ms:
        return now_ms
    return int(timestamp)


def validate_batch_size(size: int, max_size: int) -> bool:
    """False for batches above the cap; such messages are skipped."""
    return 0 <= size <= max_size


def parse_reading(
    device_id: str,
    payload: Any,
    now_ms: int,
    max_drift_ms: int,
) -> SensorReading:
    """Validate a raw reading and build an immutable SensorReading.

    Raises:
        ReadingValidationError: If any present parameter is invalid.
    """
    errors = reading_errors(payload)
    if errors:
        raise ReadingValidationError(
            f"Invalid reading from {device_id}: {'; '.join(errors)}"
        )

    return SensorReading(
        device_id=device_id,
        turbidity=payload.get("turbidity"),
        tds=payload.get("tds"),
        ph=payload.get("ph"),
        timestamp=normalize_timestamp(payload.get("timestamp"), now_ms, max_drift_ms),
        received_at=now_ms,
    )
