"""
Abstract interfaces for the liveness engine.

These are the capabilities the engine depends on. Concrete implementations
are injected explicitly at construction time; nothing is looked up from
global state.

Example:
    >>> from presence_guard.interfaces import PresenceStore, PlatformNotifier
    >>> class MyStore(PresenceStore):
    ...     ...

Modules:
    clock: Authoritative time source
    presence_store: Heartbeat / status / audit persistence
    friend_directory: Observer to watched-person links
    notifier: Push transport
    threshold_source: Remote threshold settings
"""

from presence_guard.interfaces.clock import Clock, SystemClock
from presence_guard.interfaces.friend_directory import FriendDirectory
from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.interfaces.presence_store import (
    COLLECTIONS,
    HEARTBEATS,
    SECURITY_LOGS,
    USER_STATUS,
    PresenceStore,
)
from presence_guard.interfaces.threshold_source import (
    StaticThresholdSource,
    ThresholdSource,
)

__all__ = [
    "Clock",
    "SystemClock",
    "PresenceStore",
    "HEARTBEATS",
    "USER_STATUS",
    "SECURITY_LOGS",
    "COLLECTIONS",
    "FriendDirectory",
    "PlatformNotifier",
    "ThresholdSource",
    "StaticThresholdSource",
]
