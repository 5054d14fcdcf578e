"""Tests for threshold configuration loading."""

import json
from unittest.mock import AsyncMock

import pytest

from aquaguard.evaluation.repository import ThresholdConfigRepository, merge_with_defaults
from aquaguard.evaluation.schemas import DEFAULT_THRESHOLDS, ThresholdConfig


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestMergeWithDefaults:
    """Partial documents overlay the defaults."""

    def test_empty_document(self):
        assert merge_with_defaults({}) == DEFAULT_THRESHOLDS

    def test_camel_case_partial_band(self):
        config = merge_with_defaults({"ph": {"criticalMax": 9.5}})
        assert config.ph.critical_max == 9.5
        assert config.ph.warning_max == 8.5
        assert config.tds == DEFAULT_THRESHOLDS.tds

    def test_snake_case_keys(self):
        config = merge_with_defaults(
            {"trend_detection": {"threshold_percentage": 25}, "tds": {"warning_max": 400}}
        )
        assert config.trend_detection.threshold_percentage == 25
        assert config.trend_detection.time_window_minutes == 30
        assert config.tds.warning_max == 400

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            merge_with_defaults({"trendDetection": {"thresholdPercentage": -1}})


class TestThresholdConfigRepository:
    """Database-backed configuration with fallback and caching."""

    async def test_missing_row_uses_defaults(self, fake_db):
        repo = ThresholdConfigRepository(fake_db)
        assert await repo.get_threshold_config() == DEFAULT_THRESHOLDS

    async def test_stored_document_merged(self, fake_db):
        fake_db.settings["thresholds"] = json.dumps({"turbidity": {"warningMax": 3}})
        repo = ThresholdConfigRepository(fake_db)

        config = await repo.get_threshold_config()

        assert config.turbidity.warning_max == 3
        assert config.turbidity.critical_max == 10

    async def test_invalid_document_uses_defaults(self, fake_db):
        fake_db.settings["thresholds"] = "{not json"
        repo = ThresholdConfigRepository(fake_db)
        assert await repo.get_threshold_config() == DEFAULT_THRESHOLDS

    async def test_database_error_uses_defaults(self):
        db = AsyncMock()
        db.fetchval.side_effect = ConnectionError("down")
        repo = ThresholdConfigRepository(db)
        assert await repo.get_threshold_config() == DEFAULT_THRESHOLDS

    async def test_cached_until_expiry(self, fake_db):
        clock = FakeClock()
        repo = ThresholdConfigRepository(fake_db, cache_seconds=60, clock=clock)

        await repo.get_threshold_config()
        fake_db.settings["thresholds"] = json.dumps({"ph": {"criticalMax": 9.9}})

        clock.now += 30
        assert (await repo.get_threshold_config()).ph.critical_max == 9.0

        clock.now += 31
        assert (await repo.get_threshold_config()).ph.critical_max == 9.9

    async def test_save_updates_cache(self):
        db = AsyncMock()
        repo = ThresholdConfigRepository(db)
        config = ThresholdConfig.model_validate({"ph": {"criticalMax": 9.7}})

        await repo.save_threshold_config(config)

        stored = json.loads(db.execute.await_args.args[2])
        assert stored["ph"]["criticalMax"] == 9.7
        assert (await repo.get_threshold_config()).ph.critical_max == 9.7
        db.fetchval.assert_not_awaited()
