"""
In-process storage adapters.

Used for single-process deployments, local development and tests. Records
are held in their JSON form, exactly as the Redis adapter returns them, so
callers behave the same against either backend.

Example:
    >>> store = InMemoryPresenceStore()
    >>> await store.append(HEARTBEATS, record)
    >>> await store.get_latest(HEARTBEATS, record.owner_id)
"""

from bisect import bisect_left, bisect_right
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel

from presence_guard.interfaces.friend_directory import FriendDirectory
from presence_guard.interfaces.presence_store import COLLECTIONS, PresenceStore
from presence_guard.models.base import ensure_utc
from presence_guard.models.presence import FriendLink

logger = structlog.get_logger(__name__)


class _SortedSeries:
    """Records for one (collection, user) ordered by sort key."""

    __slots__ = ("keys", "records")

    def __init__(self) -> None:
        self.keys: List[datetime] = []
        self.records: List[Dict[str, Any]] = []

    def insert(self, key: datetime, record: Dict[str, Any]) -> None:
        # bisect_right keeps insertion order among equal timestamps
        idx = bisect_right(self.keys, key)
        self.keys.insert(idx, key)
        self.records.insert(idx, record)

    def latest(self) -> Optional[Dict[str, Any]]:
        return self.records[-1] if self.records else None

    def between(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        lo = bisect_left(self.keys, start)
        hi = bisect_right(self.keys, end)
        return list(self.records[lo:hi])


class InMemoryPresenceStore(PresenceStore):
    """
    Dict-backed presence store.

    Appended collections keep a sorted series per user; keyed collections
    keep one record per user, which also serves as its latest entry.
    """

    def __init__(self) -> None:
        self._series: Dict[Tuple[str, str], _SortedSeries] = {}
        self._keyed: Dict[Tuple[str, str], Dict[str, Any]] = {}

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")

    async def append(self, collection: str, record: BaseModel) -> None:
        self._check_collection(collection)
        user_id = record.partition_key  # type: ignore[attr-defined]
        sort_key = ensure_utc(record.sort_key)  # type: ignore[attr-defined]
        series = self._series.setdefault((collection, user_id), _SortedSeries())
        series.insert(sort_key, record.model_dump(mode="json"))

        logger.debug(
            "record_appended",
            collection=collection,
            user_id=user_id,
            size=len(series.records),
        )

    async def get_latest(self, collection: str, user_id: str) -> Optional[Dict[str, Any]]:
        self._check_collection(collection)
        keyed = self._keyed.get((collection, user_id))
        if keyed is not None:
            return dict(keyed)
        series = self._series.get((collection, user_id))
        if series is None:
            return None
        latest = series.latest()
        return dict(latest) if latest is not None else None

    async def query_range(
        self,
        collection: str,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Dict[str, Any]]:
        self._check_collection(collection)
        series = self._series.get((collection, user_id))
        if series is None:
            return []
        return series.between(ensure_utc(start), ensure_utc(end))

    async def put(self, collection: str, user_id: str, record: BaseModel) -> None:
        self._check_collection(collection)
        self._keyed[(collection, user_id)] = record.model_dump(mode="json")

    def count(self, collection: str, user_id: Optional[str] = None) -> int:
        """Number of appended records in a collection, optionally for one user."""
        return sum(
            len(series.records)
            for (name, owner), series in self._series.items()
            if name == collection and (user_id is None or owner == user_id)
        )


class InMemoryFriendDirectory(FriendDirectory):
    """
    Dict-backed friend directory.

    Example:
        >>> directory = InMemoryFriendDirectory()
        >>> directory.add_friend("observer-1", "user-1", display_name="Mom")
        >>> await directory.get_friends("observer-1")
        [FriendLink(user_id='user-1', display_name='Mom')]
    """

    def __init__(self) -> None:
        self._friends: Dict[str, Dict[str, FriendLink]] = {}

    def add_friend(
        self,
        observer_id: str,
        user_id: str,
        display_name: Optional[str] = None,
    ) -> None:
        """Link an observer to a watched person."""
        links = self._friends.setdefault(observer_id, {})
        links[user_id] = FriendLink(user_id=user_id, display_name=display_name)

    def remove_friend(self, observer_id: str, user_id: str) -> None:
        """Unlink an observer from a watched person."""
        links = self._friends.get(observer_id)
        if links is None:
            return
        links.pop(user_id, None)
        if not links:
            del self._friends[observer_id]

    async def list_observers(self) -> List[str]:
        return sorted(self._friends)

    async def get_friends(self, observer_id: str) -> List[FriendLink]:
        return list(self._friends.get(observer_id, {}).values())
