"""
Abstract base class for the presence store.

The presence store is the remote document store holding heartbeats, the
per-user presence records and the security audit log. The engine only
relies on four capabilities: append, latest-by-user, time-range query and
keyed upsert. Every record handed to the store exposes a ``partition_key``
(the user id) and a ``sort_key`` (a timestamp) so adapters can index it
without knowing its type.

Collections:
    - heartbeats: HeartbeatRecord, append-only
    - userStatus: PresenceState, one keyed record per user
    - securityLogs: SuspiciousActivityEntry, append-only

Example:
    >>> await store.append(HEARTBEATS, record)
    >>> latest = await store.get_latest(HEARTBEATS, "user-1")
    >>> latest["timestamp"]
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

HEARTBEATS = "heartbeats"
USER_STATUS = "userStatus"
SECURITY_LOGS = "securityLogs"

COLLECTIONS = (HEARTBEATS, USER_STATUS, SECURITY_LOGS)


class PresenceStore(ABC):
    """
    Abstract presence store.

    Records are returned as plain dicts (the JSON form of the model) so the
    caller decides which model to validate them into.

    Note:
        Implementations raise StoreUnavailable on any backend failure.
        Callers treat it as transient and retry on their next cycle.
    """

    @abstractmethod
    async def append(self, collection: str, record: BaseModel) -> None:
        """
        Append an immutable record to a collection.

        Args:
            collection: Target collection name.
            record: Model with ``partition_key`` and ``sort_key``.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass

    @abstractmethod
    async def get_latest(self, collection: str, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Return the newest record for a user, or None.

        For keyed collections (userStatus) this is the current record.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass

    @abstractmethod
    async def query_range(
        self,
        collection: str,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Dict[str, Any]]:
        """
        Return a user's records with start <= sort_key <= end, oldest first.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass

    @abstractmethod
    async def put(self, collection: str, user_id: str, record: BaseModel) -> None:
        """
        Upsert the single keyed record for a user.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass
