"""Stateless threshold and trend evaluation.

Both functions are pure: history is passed in by the caller and nothing
is persisted here.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from aquaguard.evaluation.schemas import ThresholdCheck, ThresholdConfig, TrendAnalysis

logger = logging.getLogger(__name__)

# Absolute percentage change above which a trend escalates
TREND_CRITICAL_PCT = 30.0
TREND_WARNING_PCT = 20.0


def check_threshold(parameter: str, value: float, config: ThresholdConfig) -> ThresholdCheck:
    """Compare a value with the parameter's bands.

    Critical edges are checked first, then warning edges.

    Args:
        parameter: tds, ph or turbidity.
        value: Measured value.
        config: Threshold configuration.

    Returns:
        ThresholdCheck with the severity and the crossed edge, or
        ``exceeded=False``.
    """
    band = config.for_parameter(parameter)

    if band.critical_max is not None and value > band.critical_max:
        return ThresholdCheck(True, "Critical", band.critical_max)
    if band.critical_min is not None and value < band.critical_min:
        return ThresholdCheck(True, "Critical", band.critical_min)
    if band.warning_max is not None and value > band.warning_max:
        return ThresholdCheck(True, "Warning", band.warning_max)
    if band.warning_min is not None and value < band.warning_min:
        return ThresholdCheck(True, "Warning", band.warning_min)

    return ThresholdCheck(False)


def trend_severity(change_rate: float) -> str:
    if change_rate > TREND_CRITICAL_PCT:
        return "Critical"
    if change_rate > TREND_WARNING_PCT:
        return "Warning"
    return "Advisory"


def _values(history: Sequence[Mapping[str, Any]], parameter: str) -> list[float]:
    values = []
    for entry in history:
        value = entry.get(parameter)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            values.append(float(value))
    return values


def analyze_trend(
    device_id: str,
    parameter: str,
    value: float,
    config: ThresholdConfig,
    history: Sequence[Mapping[str, Any]],
) -> TrendAnalysis | None:
    """Compare a value with the oldest reading in the history window.

    Args:
        device_id: Reporting device (for logs).
        parameter: tds, ph or turbidity.
        value: Current value.
        config: Threshold configuration (trend detection settings).
        history: Prior readings in the window, oldest first.

    Returns:
        TrendAnalysis, or None when detection is disabled, fewer than two
        prior readings carry the parameter, or the baseline is zero.
    """
    trend = config.trend_detection
    if not trend.enabled:
        return None

    prior = _values(history, parameter)
    if len(prior) < 2:
        return None

    previous = prior[0]
    if previous == 0:
        logger.debug("Trend baseline is zero for %s/%s, skipping", device_id, parameter)
        return None

    change = (value - previous) / previous * 100
    change_rate = abs(change)

    return TrendAnalysis(
        has_trend=change_rate >= trend.threshold_percentage,
        direction="increasing" if change > 0 else "decreasing",
        change_rate=change_rate,
        previous_value=previous,
        severity=trend_severity(change_rate),
    )
