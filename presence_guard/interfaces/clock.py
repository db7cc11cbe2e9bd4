"""
Authoritative time source.

Every time-dependent decision (drift checks, rate-limit windows, cooldowns,
elapsed silence) reads time through a Clock so tests can freeze it and
production uses server time rather than device time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Abstract time source returning aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        """
        Return the current time.

        Returns:
            datetime: Timezone-aware UTC datetime.
        """
        pass


class SystemClock(Clock):
    """Wall-clock time of the host."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
