"""Time-series store adapter for sensor readings."""

from aquaguard.telemetry.store import TelemetryStore

__all__ = ["TelemetryStore"]
