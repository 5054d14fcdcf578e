"""Tests for threshold and trend evaluation."""

import pytest

from aquaguard.evaluation.evaluator import analyze_trend, check_threshold, trend_severity
from aquaguard.evaluation.schemas import DEFAULT_THRESHOLDS, ThresholdConfig


def _history(parameter: str, *values: float) -> list[dict]:
    return [{parameter: v, "timestamp": i} for i, v in enumerate(values)]


class TestCheckThreshold:
    """Band comparison with default thresholds."""

    def test_turbidity_warning(self):
        check = check_threshold("turbidity", 6.2, DEFAULT_THRESHOLDS)
        assert check.exceeded is True
        assert check.severity == "Warning"
        assert check.threshold == 5

    def test_turbidity_critical(self):
        check = check_threshold("turbidity", 12.0, DEFAULT_THRESHOLDS)
        assert check.severity == "Critical"
        assert check.threshold == 10

    def test_ph_critical_high(self):
        check = check_threshold("ph", 9.2, DEFAULT_THRESHOLDS)
        assert check.severity == "Critical"
        assert check.threshold == 9.0

    def test_ph_critical_low(self):
        check = check_threshold("ph", 5.0, DEFAULT_THRESHOLDS)
        assert check.severity == "Critical"
        assert check.threshold == 5.5

    def test_ph_warning_low(self):
        check = check_threshold("ph", 5.8, DEFAULT_THRESHOLDS)
        assert check.severity == "Warning"
        assert check.threshold == 6.0

    @pytest.mark.parametrize(
        "parameter,value",
        [("ph", 7.0), ("ph", 8.5), ("ph", 6.0), ("tds", 500), ("turbidity", 0)],
    )
    def test_within_bands(self, parameter, value):
        check = check_threshold(parameter, value, DEFAULT_THRESHOLDS)
        assert check.exceeded is False
        assert check.severity is None

    def test_edges_are_exclusive(self):
        assert check_threshold("ph", 9.0, DEFAULT_THRESHOLDS).severity == "Warning"
        assert check_threshold("tds", 1000, DEFAULT_THRESHOLDS).severity == "Warning"

    def test_missing_band_edge_ignored(self):
        config = ThresholdConfig.model_validate({"ph": {"criticalMax": 10}})
        assert check_threshold("ph", 9.5, config).exceeded is False
        assert check_threshold("ph", 10.5, config).severity == "Critical"

    def test_unknown_parameter(self):
        with pytest.raises(ValueError):
            check_threshold("chlorine", 1.0, DEFAULT_THRESHOLDS)


class TestTrendSeverity:
    @pytest.mark.parametrize(
        "rate,severity",
        [(15.0, "Advisory"), (20.0, "Advisory"), (20.1, "Warning"), (30.0, "Warning"), (30.1, "Critical")],
    )
    def test_bands(self, rate, severity):
        assert trend_severity(rate) == severity


class TestAnalyzeTrend:
    """Change relative to the oldest reading in the window."""

    def test_increasing_trend(self):
        result = analyze_trend(
            "AG-001", "tds", 250.0, DEFAULT_THRESHOLDS, _history("tds", 200, 210, 230)
        )
        assert result.has_trend is True
        assert result.direction == "increasing"
        assert result.previous_value == 200
        assert result.change_rate == pytest.approx(25.0)
        assert result.severity == "Warning"

    def test_decreasing_trend(self):
        result = analyze_trend(
            "AG-001", "ph", 5.0, DEFAULT_THRESHOLDS, _history("ph", 8.0, 7.0)
        )
        assert result.has_trend is True
        assert result.direction == "decreasing"
        assert result.change_rate == pytest.approx(37.5)
        assert result.severity == "Critical"

    def test_below_threshold_percentage(self):
        result = analyze_trend(
            "AG-001", "tds", 210.0, DEFAULT_THRESHOLDS, _history("tds", 200, 205)
        )
        assert result is not None
        assert result.has_trend is False

    def test_threshold_percentage_inclusive(self):
        config = ThresholdConfig.model_validate({"trendDetection": {"thresholdPercentage": 25}})
        result = analyze_trend("AG-001", "tds", 250.0, config, _history("tds", 200, 220))
        assert result.has_trend is True
        assert result.severity == "Warning"

    def test_needs_two_prior_readings(self):
        assert analyze_trend("AG-001", "tds", 400.0, DEFAULT_THRESHOLDS, _history("tds", 200)) is None
        assert analyze_trend("AG-001", "tds", 400.0, DEFAULT_THRESHOLDS, []) is None

    def test_entries_without_parameter_ignored(self):
        history = [{"ph": 7.0}, {"tds": 200}, {"ph": 7.1}]
        assert analyze_trend("AG-001", "tds", 400.0, DEFAULT_THRESHOLDS, history) is None

    def test_zero_baseline(self):
        result = analyze_trend(
            "AG-001", "turbidity", 3.0, DEFAULT_THRESHOLDS, _history("turbidity", 0, 1)
        )
        assert result is None

    def test_disabled(self):
        config = ThresholdConfig.model_validate({"trendDetection": {"enabled": False}})
        assert analyze_trend("AG-001", "tds", 400.0, config, _history("tds", 200, 210)) is None
