"""
Cooldown table for outbound notifications.

Process-local map of (observed person, alert level) to the entry written
when a notification was dispatched. The dispatcher writes an entry before
delivering (so a concurrent request cannot double-send while delivery is in
flight), then settles it with the recipients that were reached. An entry
that reached nobody is removed; otherwise it is left to expire.

The table is bounded: expired entries are purged on access, and when
``max_entries`` is reached the oldest entry is evicted.

Example:
    >>> table = CooldownTable()
    >>> table.acquire(key, now, window_seconds=300)
    >>> table.remaining(key, now + timedelta(seconds=120))
    180.0
"""

from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import structlog

from presence_guard.models.notifications import CooldownEntry, CooldownKey

logger = structlog.get_logger(__name__)


class CooldownTable:
    """
    Bounded cooldown entry map.

    Attributes:
        max_entries: Upper bound on entries held in memory.
    """

    def __init__(self, max_entries: int = 10_000) -> None:
        self.max_entries = max_entries
        self._entries: "OrderedDict[CooldownKey, CooldownEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: CooldownKey, now: datetime) -> Optional[CooldownEntry]:
        """Return the active entry for a key, dropping it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_active(now):
            del self._entries[key]
            return None
        return entry

    def remaining(self, key: CooldownKey, now: datetime) -> float:
        """Seconds left in the key's window, 0 if none is active."""
        entry = self.get(key, now)
        return entry.remaining_seconds(now) if entry is not None else 0.0

    def acquire(self, key: CooldownKey, now: datetime, window_seconds: float) -> CooldownEntry:
        """
        Write the entry for a key, replacing any previous one.

        Args:
            key: (observed person, level).
            now: Dispatch time.
            window_seconds: Cooldown length.

        Returns:
            CooldownEntry: The written entry.
        """
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self.purge_expired(now)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(
                    "cooldown_entry_evicted",
                    observed_person_id=evicted.observed_person_id,
                    level=evicted.alert_level.value,
                )

        entry = CooldownEntry(
            observed_person_id=key.observed_person_id,
            alert_level=key.alert_level,
            sent_at=now,
            window_seconds=window_seconds,
        )
        self._entries.pop(key, None)
        self._entries[key] = entry
        return entry

    def settle(
        self,
        key: CooldownKey,
        delivered_to: Iterable[str],
        complete: bool,
    ) -> Optional[CooldownEntry]:
        """
        Record the outcome of a delivery round.

        Args:
            key: (observed person, level).
            delivered_to: Every recipient reached in this window so far.
            complete: Whether no recipient is still owed the notification.

        Returns:
            The settled entry, or None if the entry was removed meanwhile.
        """
        return self._replace(
            key, delivered_to=tuple(delivered_to), in_flight=False, complete=complete
        )

    def resume(self, key: CooldownKey) -> Optional[CooldownEntry]:
        """Mark an open entry in flight again before retrying missed recipients."""
        return self._replace(key, in_flight=True)

    def _replace(self, key: CooldownKey, **update: object) -> Optional[CooldownEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        updated = entry.model_copy(update=update)
        self._entries[key] = updated
        return updated

    def release(self, key: CooldownKey) -> bool:
        """Remove a key's entry. Returns True if one existed."""
        return self._entries.pop(key, None) is not None

    def purge_expired(self, now: datetime) -> int:
        """Drop expired entries. Returns how many were removed."""
        expired = [key for key, entry in self._entries.items() if not entry.is_active(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def active(self, now: datetime) -> List[CooldownEntry]:
        """All active entries, oldest first."""
        self.purge_expired(now)
        return list(self._entries.values())

    def snapshot(self, now: datetime) -> Dict[str, float]:
        """Remaining seconds per "person:level" key."""
        return {
            f"{entry.observed_person_id}:{entry.alert_level.value}": entry.remaining_seconds(now)
            for entry in self.active(now)
        }
