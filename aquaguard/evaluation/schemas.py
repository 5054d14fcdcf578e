"""Threshold configuration and evaluation results.

Configuration documents are stored as JSON and may use camelCase keys
(``warningMin``, ``trendDetection``); both spellings are accepted.
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParameterThreshold(_ConfigModel):
    """Warning and critical bands for one parameter."""

    warning_min: float | None = None
    warning_max: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None
    unit: str = ""


class TrendDetectionConfig(_ConfigModel):
    enabled: bool = True
    threshold_percentage: float = Field(default=15.0, gt=0.0)
    time_window_minutes: int = Field(default=30, ge=1)


class ThresholdConfig(_ConfigModel):
    """Per-parameter bands plus trend detection settings."""

    tds: ParameterThreshold = ParameterThreshold(
        warning_min=0, warning_max=500, critical_min=0, critical_max=1000, unit="ppm"
    )
    ph: ParameterThreshold = ParameterThreshold(
        warning_min=6.0, warning_max=8.5, critical_min=5.5, critical_max=9.0
    )
    turbidity: ParameterThreshold = ParameterThreshold(
        warning_min=0, warning_max=5, critical_min=0, critical_max=10, unit="NTU"
    )
    trend_detection: TrendDetectionConfig = TrendDetectionConfig()

    def for_parameter(self, parameter: str) -> ParameterThreshold:
        band = getattr(self, parameter, None)
        if not isinstance(band, ParameterThreshold):
            raise ValueError(f"Unknown parameter {parameter!r}")
        return band


DEFAULT_THRESHOLDS = ThresholdConfig()


@dataclass(frozen=True)
class ThresholdCheck:
    """Outcome of comparing a value with its bands.

    ``threshold`` is the band edge that was crossed.
    """

    exceeded: bool
    severity: str | None = None
    threshold: float | None = None


@dataclass(frozen=True)
class TrendAnalysis:
    """Outcome of comparing a value with the start of its history window.

    ``change_rate`` is the absolute percentage change.
    """

    has_trend: bool
    direction: str
    change_rate: float
    previous_value: float
    severity: str
