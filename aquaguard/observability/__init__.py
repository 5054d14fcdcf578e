"""Observability layer - logging and metrics."""

from aquaguard.observability.logging import setup_logging
from aquaguard.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
