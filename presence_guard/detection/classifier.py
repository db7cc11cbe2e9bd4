"""
Alert classifier.

Maps elapsed silence to an alert level. The mapping is a stateless,
monotonic step function with no hysteresis: the same elapsed time and
thresholds always give the same level, and a longer silence never gives a
lower severity. Re-evaluation over time is the scheduler's job.

Example:
    >>> classifier = AlertClassifier()
    >>> classifier.classify(timedelta(minutes=1500), ThresholdConfig())
    <AlertLevel.WARNING: 'warning'>
    >>> classifier.classify(None, ThresholdConfig())
    <AlertLevel.UNKNOWN: 'unknown'>
"""

from datetime import timedelta
from typing import Optional

import structlog

from presence_guard.config.models import ThresholdConfig
from presence_guard.models.presence import AlertLevel

logger = structlog.get_logger(__name__)


class AlertClassifier:
    """
    Classifies elapsed silence into alert levels.

    Boundaries are inclusive on the lower side:
        elapsed < warning                  -> normal
        warning <= elapsed < danger        -> warning
        danger <= elapsed < emergency      -> danger
        elapsed >= emergency               -> emergency
        no heartbeat ever recorded         -> unknown

    Attributes:
        None - this is a stateless classifier.
    """

    def classify(
        self,
        elapsed: Optional[timedelta],
        thresholds: ThresholdConfig,
    ) -> AlertLevel:
        """
        Classify elapsed silence.

        Args:
            elapsed: Time since the last heartbeat, None if there never was one.
            thresholds: Validated threshold config.

        Returns:
            AlertLevel: The computed level.
        """
        if elapsed is None:
            return AlertLevel.UNKNOWN
        if elapsed >= thresholds.emergency_duration:
            return AlertLevel.EMERGENCY
        if elapsed >= thresholds.danger_duration:
            return AlertLevel.DANGER
        if elapsed >= thresholds.warning_duration:
            return AlertLevel.WARNING
        return AlertLevel.NORMAL

    @staticmethod
    def severity(level: AlertLevel) -> int:
        """Numeric severity, 0 (unknown) to 4 (emergency)."""
        return level.severity

    @staticmethod
    def describe(elapsed: Optional[timedelta]) -> str:
        """
        Human-readable silence duration for notification text.

        Example:
            >>> AlertClassifier.describe(timedelta(hours=50))
            '2 days 2 hours'
        """
        if elapsed is None:
            return "no activity recorded"

        total_minutes = max(0, int(elapsed.total_seconds() // 60))
        days, remainder = divmod(total_minutes, 24 * 60)
        hours, minutes = divmod(remainder, 60)

        parts = []
        if days:
            parts.append(f"{days} day{'s' if days != 1 else ''}")
        if hours:
            parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
        if not days and (minutes or not parts):
            parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
        return " ".join(parts)


def create_classifier() -> AlertClassifier:
    """
    Factory function to create an AlertClassifier.

    Returns:
        AlertClassifier: A new classifier instance.
    """
    return AlertClassifier()
