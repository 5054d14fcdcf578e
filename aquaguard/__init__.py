"""AquaGuard - water-quality telemetry alerting pipeline."""

__version__ = "0.1.0"
