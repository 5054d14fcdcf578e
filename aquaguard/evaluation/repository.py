"""Threshold configuration source backed by the ``alert_settings`` table."""

import json
import logging
import time
from typing import Any, Callable

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from aquaguard.evaluation.schemas import DEFAULT_THRESHOLDS, ThresholdConfig
from aquaguard.storage.database import Database

logger = logging.getLogger(__name__)

THRESHOLDS_KEY = "thresholds"


def _camel(key: str) -> str:
    return to_camel(key) if "_" in key else key


def merge_with_defaults(document: dict[str, Any]) -> ThresholdConfig:
    """Overlay a stored (possibly partial) document on the defaults.

    Keys may be snake_case or camelCase.
    """
    merged = DEFAULT_THRESHOLDS.model_dump(by_alias=True)
    for raw_key, value in document.items():
        key = _camel(raw_key)
        if isinstance(value, dict):
            value = {_camel(k): v for k, v in value.items()}
        section = merged.get(key)
        if isinstance(section, dict) and isinstance(value, dict):
            section.update(value)
        else:
            merged[key] = value
    return ThresholdConfig.model_validate(merged)


class ThresholdConfigRepository:
    """Loads threshold configuration, falling back to defaults.

    The loaded config is reused for ``cache_seconds`` to keep a database
    round trip off the per-reading path.
    """

    def __init__(
        self,
        database: Database,
        cache_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._db = database
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._cached: ThresholdConfig | None = None
        self._loaded_at = 0.0

    async def get_threshold_config(self) -> ThresholdConfig:
        now = self._clock()
        if self._cached is not None and now - self._loaded_at < self._cache_seconds:
            return self._cached

        config = await self._load()
        self._cached = config
        self._loaded_at = now
        return config

    async def _load(self) -> ThresholdConfig:
        try:
            raw = await self._db.fetchval(
                "SELECT config FROM alert_settings WHERE key = $1", THRESHOLDS_KEY
            )
        except Exception as e:
            logger.warning("Failed to load threshold config, using defaults: %s", e)
            return DEFAULT_THRESHOLDS

        if raw is None:
            return DEFAULT_THRESHOLDS

        try:
            document = json.loads(raw) if isinstance(raw, str) else raw
            return merge_with_defaults(document)
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Invalid threshold config document, using defaults: %s", e)
            return DEFAULT_THRESHOLDS

    async def save_threshold_config(self, config: ThresholdConfig) -> None:
        """Persist a threshold configuration document."""
        await self._db.execute(
            """
            INSERT INTO alert_settings (key, config, updated_at)
            VALUES ($1, $2, NOW())
            ON CONFLICT (key) DO UPDATE
            SET config = EXCLUDED.config, updated_at = NOW()
            """,
            THRESHOLDS_KEY,
            config.model_dump_json(by_alias=True),
        )
        self._cached = config
        self._loaded_at = self._clock()
