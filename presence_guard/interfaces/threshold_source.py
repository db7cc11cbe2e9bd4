"""
Remote source of threshold settings.

The source returns a raw mapping; validation and caching are the
ThresholdConfigProvider's job. Accepted keys are either ``warning_hours``,
``danger_hours``, ``emergency_hours`` or the ``*_duration`` equivalents.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional


class ThresholdSource(ABC):
    """Where threshold settings are read from."""

    @abstractmethod
    async def fetch(self) -> Optional[Mapping[str, Any]]:
        """
        Fetch the current settings document.

        Returns:
            The raw mapping, or None if no document exists.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass


class StaticThresholdSource(ThresholdSource):
    """
    In-process settings document.

    Used when no remote settings exist, and by operators or tests that
    change thresholds at runtime via ``set``.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        self._data: Optional[Dict[str, Any]] = dict(data) if data else None

    def set(self, data: Optional[Mapping[str, Any]]) -> None:
        self._data = dict(data) if data else None

    async def fetch(self) -> Optional[Mapping[str, Any]]:
        return dict(self._data) if self._data else None
