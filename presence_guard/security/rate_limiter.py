"""
Sliding-window rate limiter.

Keeps, per key, the timestamps of accepted requests within the last window.
A request is rejected when the window already holds ``max_requests``
entries. Only accepted requests are recorded, so a rejected burst does not
extend its own lockout.

The table is bounded: keys whose newest entry left the window are purged,
and when ``max_tracked_keys`` is reached the least recently used key is
evicted.

Example:
    >>> limiter = SlidingWindowRateLimiter(max_requests=10, window_seconds=60)
    >>> allowed, retry_after = limiter.hit("user-1", now)
    >>> allowed
    True
"""

from collections import OrderedDict, deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Tuple

import structlog

logger = structlog.get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Per-key sliding window counter.

    Attributes:
        max_requests: Accepted requests allowed within one window.
        window: Window length.
        max_tracked_keys: Upper bound on keys held in memory.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60,
        max_tracked_keys: int = 10_000,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window = timedelta(seconds=window_seconds)
        self.max_tracked_keys = max_tracked_keys
        self._windows: "OrderedDict[str, Deque[datetime]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, entries: Deque[datetime], now: datetime) -> None:
        cutoff = now - self.window
        while entries and entries[0] <= cutoff:
            entries.popleft()

    def _purge_expired(self, now: datetime) -> None:
        cutoff = now - self.window
        expired = [key for key, entries in self._windows.items() if not entries or entries[-1] <= cutoff]
        for key in expired:
            del self._windows[key]

    def _make_room(self, now: datetime) -> None:
        if len(self._windows) < self.max_tracked_keys:
            return
        self._purge_expired(now)
        while len(self._windows) >= self.max_tracked_keys:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug("rate_limit_key_evicted", key=evicted)

    def hit(self, key: str, now: datetime) -> Tuple[bool, float]:
        """
        Record a request if it fits in the window.

        Args:
            key: Rate-limited identity (user id).
            now: Authoritative current time.

        Returns:
            Tuple of (allowed, retry_after_seconds). retry_after is 0 when
            allowed, otherwise the time until the oldest entry expires.
        """
        entries = self._windows.get(key)
        if entries is None:
            self._make_room(now)
            entries = deque()
            self._windows[key] = entries
        else:
            self._windows.move_to_end(key)

        self._prune(entries, now)

        if len(entries) >= self.max_requests:
            retry_after = (entries[0] + self.window - now).total_seconds()
            return False, max(0.0, retry_after)

        entries.append(now)
        return True, 0.0

    def remaining(self, key: str, now: datetime) -> int:
        """Requests still allowed for a key in the current window."""
        entries = self._windows.get(key)
        if entries is None:
            return self.max_requests
        self._prune(entries, now)
        return max(0, self.max_requests - len(entries))

    def reset(self, key: str) -> None:
        """Forget a key's history."""
        self._windows.pop(key, None)

    def snapshot(self, now: datetime) -> Dict[str, int]:
        """Current in-window counts per key, after purging expired keys."""
        self._purge_expired(now)
        for entries in self._windows.values():
            self._prune(entries, now)
        return {key: len(entries) for key, entries in self._windows.items()}
