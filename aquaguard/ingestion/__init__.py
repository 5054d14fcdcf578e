"""
Sensor message ingestion.

Leaf modules are re-exported here. The queue, orchestrator and worker
are imported from their modules directly:

    from aquaguard.ingestion.orchestrator import IngestionOrchestrator
    from aquaguard.ingestion.worker import IngestionWorker
"""

from aquaguard.ingestion.config import IngestionConfig
from aquaguard.ingestion.schemas import PARAMETERS, SensorMessage, SensorReading
from aquaguard.ingestion.validation import (
    normalize_timestamp,
    parse_reading,
    validate_batch_size,
    validate_device_id,
    validate_reading,
)

__all__ = [
    "IngestionConfig",
    "PARAMETERS",
    "SensorMessage",
    "SensorReading",
    "normalize_timestamp",
    "parse_reading",
    "validate_batch_size",
    "validate_device_id",
    "validate_reading",
]
