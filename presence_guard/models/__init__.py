"""
Shared Pydantic data models for the liveness engine.

Modules:
    base: UTC helpers shared by all models
    heartbeat: Motion events and heartbeat records
    presence: Alert levels, presence state and friend links
    security: Suspicious activity audit entries
    notifications: Cooldown entries, requests and dispatch results

Example:
    >>> from presence_guard.models import HeartbeatRecord, AlertLevel
    >>> from presence_guard.models import NotificationRequest, DispatchOutcome
"""

# Heartbeat models
from presence_guard.models.heartbeat import (
    DeviceDescriptor,
    HeartbeatRecord,
    MotionEvent,
    SensorSource,
)

# Presence models
from presence_guard.models.presence import (
    AlertLevel,
    FriendLink,
    PresenceState,
)

# Security models
from presence_guard.models.security import (
    SuspiciousActivityEntry,
    SuspiciousActivityType,
)

# Notification models
from presence_guard.models.notifications import (
    CooldownEntry,
    CooldownKey,
    DispatchOutcome,
    DispatchResult,
    NotificationRecord,
    NotificationRequest,
)

__all__ = [
    # Heartbeat
    "SensorSource",
    "DeviceDescriptor",
    "MotionEvent",
    "HeartbeatRecord",
    # Presence
    "AlertLevel",
    "PresenceState",
    "FriendLink",
    # Security
    "SuspiciousActivityType",
    "SuspiciousActivityEntry",
    # Notifications
    "CooldownKey",
    "CooldownEntry",
    "NotificationRequest",
    "DispatchOutcome",
    "DispatchResult",
    "NotificationRecord",
]
