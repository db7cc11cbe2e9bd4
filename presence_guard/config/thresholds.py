"""
Threshold configuration provider.

Supplies the current ThresholdConfig to the escalation scheduler. Values come
from a ThresholdSource (an admin settings document in production) and are
cached for a fixed lifetime. Any candidate that breaks the ordering invariant
is rejected and the previously active config stays in effect, so the
scheduler always classifies against a valid config.

Example:
    >>> provider = ThresholdConfigProvider(source=StaticThresholdSource({}))
    >>> thresholds = await provider.get_thresholds()
    >>> provider.update({"warning_hours": 50, "danger_hours": 48, "emergency_hours": 72})
    False
"""

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from presence_guard.config.models import DEFAULT_THRESHOLDS, ThresholdConfig
from presence_guard.interfaces.clock import Clock, SystemClock
from presence_guard.interfaces.threshold_source import ThresholdSource

logger = structlog.get_logger(__name__)


DEFAULT_CACHE_SECONDS = 300


class ThresholdConfigProvider:
    """
    Cached, validated access to alert thresholds.

    Attributes:
        source: Remote source of threshold settings, optional.
        cache_seconds: How long a fetched config is reused.
        current: The active ThresholdConfig.
    """

    def __init__(
        self,
        source: Optional[ThresholdSource] = None,
        defaults: ThresholdConfig = DEFAULT_THRESHOLDS,
        cache_seconds: int = DEFAULT_CACHE_SECONDS,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            source: Where to fetch settings from. Without one the defaults
                are served forever.
            defaults: Config used until a valid fetch succeeds.
            cache_seconds: Cache lifetime for fetched settings.
            clock: Time source, system clock by default.
        """
        self.source = source
        self.cache_seconds = cache_seconds
        self._clock = clock or SystemClock()
        self._current = defaults
        self._fetched_at: Optional[datetime] = None

    @property
    def current(self) -> ThresholdConfig:
        return self._current

    def update(self, candidate: Union[ThresholdConfig, Mapping[str, Any]]) -> bool:
        """
        Replace the active config if the candidate is valid.

        Args:
            candidate: A ThresholdConfig or a raw mapping using either
                ``*_hours`` or ``*_duration`` keys.

        Returns:
            bool: True if applied, False if rejected (prior config kept).
        """
        if isinstance(candidate, ThresholdConfig):
            config = candidate
        else:
            try:
                config = ThresholdConfig.from_mapping(candidate)
            except (PydanticValidationError, TypeError, ValueError, OverflowError) as e:
                logger.warning(
                    "threshold_config_rejected",
                    candidate=dict(candidate),
                    error=str(e),
                    kept=self._describe(self._current),
                )
                return False

        if config != self._current:
            logger.info(
                "threshold_config_updated",
                previous=self._describe(self._current),
                current=self._describe(config),
            )
        self._current = config
        return True

    def invalidate(self) -> None:
        """Force the next get_thresholds() call to refetch."""
        self._fetched_at = None

    def _is_fresh(self, now: datetime) -> bool:
        if self._fetched_at is None:
            return False
        return now - self._fetched_at < timedelta(seconds=self.cache_seconds)

    async def get_thresholds(self) -> ThresholdConfig:
        """
        Return the active thresholds, refetching when the cache expired.

        Source failures are logged and the current config is served; the
        fetch is retried on the next cache expiry.

        Returns:
            ThresholdConfig: Always a valid config.
        """
        if self.source is None:
            return self._current

        now = self._clock.now()
        if self._is_fresh(now):
            return self._current

        try:
            data = await self.source.fetch()
        except Exception as e:
            logger.warning(
                "threshold_fetch_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            self._fetched_at = now
            return self._current

        self._fetched_at = now
        if data:
            self.update(data)
        return self._current

    @staticmethod
    def _describe(config: ThresholdConfig) -> Mapping[str, float]:
        return {
            "warning_hours": config.warning_duration.total_seconds() / 3600,
            "danger_hours": config.danger_duration.total_seconds() / 3600,
            "emergency_hours": config.emergency_duration.total_seconds() / 3600,
        }
