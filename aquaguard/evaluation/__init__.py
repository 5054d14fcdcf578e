"""Threshold and trend evaluation."""

from aquaguard.evaluation.evaluator import analyze_trend, check_threshold
from aquaguard.evaluation.repository import ThresholdConfigRepository
from aquaguard.evaluation.schemas import (
    DEFAULT_THRESHOLDS,
    ParameterThreshold,
    ThresholdCheck,
    ThresholdConfig,
    TrendAnalysis,
    TrendDetectionConfig,
)

__all__ = [
    "analyze_trend",
    "check_threshold",
    "ThresholdConfigRepository",
    "DEFAULT_THRESHOLDS",
    "ParameterThreshold",
    "ThresholdCheck",
    "ThresholdConfig",
    "TrendAnalysis",
    "TrendDetectionConfig",
]
