"""Pytest fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from presence_guard.exceptions import StoreUnavailable
from presence_guard.interfaces.clock import Clock
from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.models.presence import AlertLevel
from presence_guard.storage.memory import InMemoryFriendDirectory, InMemoryPresenceStore

START = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


class RecordingNotifier(PlatformNotifier):
    """Notifier that remembers every send and can be told to fail."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail_for: set = set()
        self.raise_for: set = set()

    @property
    def name(self) -> str:
        return "recording"

    async def send(
        self,
        target_user_id: str,
        title: str,
        body: str,
        level: AlertLevel,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if target_user_id in self.raise_for:
            raise RuntimeError("push gateway down")
        if target_user_id in self.fail_for:
            return False
        self.sent.append(
            {
                "target_user_id": target_user_id,
                "title": title,
                "body": body,
                "level": level,
                "metadata": metadata or {},
            }
        )
        return True


class FlakyStore(InMemoryPresenceStore):
    """In-memory store whose reads fail for selected users."""

    def __init__(self) -> None:
        super().__init__()
        self.unavailable: set = set()
        self.fail_appends = False

    async def get_latest(self, collection: str, user_id: str) -> Optional[Dict[str, Any]]:
        if user_id in self.unavailable:
            raise StoreUnavailable(f"read failed for {user_id}")
        return await super().get_latest(collection, user_id)

    async def append(self, collection: str, record: Any) -> None:
        if self.fail_appends:
            raise StoreUnavailable("append failed")
        await super().append(collection, record)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryPresenceStore:
    return InMemoryPresenceStore()


@pytest.fixture
def flaky_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def directory() -> InMemoryFriendDirectory:
    return InMemoryFriendDirectory()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
