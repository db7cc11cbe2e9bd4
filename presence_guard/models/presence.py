"""
Presence data models.

Models:
    AlertLevel: Ordered alert levels derived from elapsed silence
    PresenceState: Latest heartbeat and derived level for one user
    FriendLink: An observer's link to a watched person
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from presence_guard.models.base import EPOCH, ensure_utc


class AlertLevel(str, Enum):
    """
    Alert levels, ordered by severity.

    Attributes:
        UNKNOWN: No heartbeat ever recorded. Never actionable.
        NORMAL: Heartbeat seen within the warning threshold.
        WARNING: Silent for at least the warning threshold.
        DANGER: Silent for at least the danger threshold.
        EMERGENCY: Silent for at least the emergency threshold.
    """

    UNKNOWN = "unknown"
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"
    EMERGENCY = "emergency"

    @property
    def severity(self) -> int:
        """Numeric severity, 0 for unknown up to 4 for emergency."""
        return _SEVERITY[self]

    @property
    def is_actionable(self) -> bool:
        """Check if this level should produce a notification."""
        return self in (AlertLevel.WARNING, AlertLevel.DANGER, AlertLevel.EMERGENCY)


_SEVERITY = {
    AlertLevel.UNKNOWN: 0,
    AlertLevel.NORMAL: 1,
    AlertLevel.WARNING: 2,
    AlertLevel.DANGER: 3,
    AlertLevel.EMERGENCY: 4,
}


class PresenceState(BaseModel):
    """
    Durable presence record for one user.

    One live record per user. Written only by the escalation scheduler,
    superseded on every poll and never deleted.

    Attributes:
        user_id: The watched person.
        last_heartbeat_at: Timestamp of the most recent accepted heartbeat.
        last_computed_level: Level computed on the last poll.
        updated_at: When this record was last written.

    Example:
        >>> state = PresenceState(user_id="u1")
        >>> state.last_computed_level
        <AlertLevel.UNKNOWN: 'unknown'>
    """

    model_config = {"frozen": True, "extra": "forbid"}

    user_id: str = Field(
        ...,
        description="The watched person",
        min_length=1,
    )
    last_heartbeat_at: Optional[datetime] = Field(
        default=None,
        description="Timestamp of the most recent accepted heartbeat",
    )
    last_computed_level: AlertLevel = Field(
        default=AlertLevel.UNKNOWN,
        description="Level computed on the last poll",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="When this record was last written",
    )

    @field_validator("last_heartbeat_at", "updated_at", mode="after")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Interpret naive timestamps as UTC."""
        return ensure_utc(v)

    @property
    def partition_key(self) -> str:
        return self.user_id

    @property
    def sort_key(self) -> datetime:
        return self.updated_at or self.last_heartbeat_at or EPOCH

    def elapsed_since_update(self, now: datetime) -> Optional[timedelta]:
        """Time since this record was last written, None if never."""
        if self.updated_at is None:
            return None
        return now - self.updated_at

    def advance(
        self,
        level: AlertLevel,
        last_heartbeat_at: Optional[datetime],
        now: datetime,
    ) -> "PresenceState":
        """
        Return the superseding record for a new poll result.

        Args:
            level: Newly computed level.
            last_heartbeat_at: Latest known heartbeat time.
            now: Poll time.

        Returns:
            PresenceState: The new record.
        """
        return self.model_copy(
            update={
                "last_computed_level": level,
                "last_heartbeat_at": last_heartbeat_at,
                "updated_at": now,
            }
        )


class FriendLink(BaseModel):
    """A watched person as seen from one observer's friend list."""

    model_config = {"frozen": True, "extra": "forbid"}

    user_id: str = Field(
        ...,
        description="The watched person",
        min_length=1,
    )
    display_name: Optional[str] = Field(
        default=None,
        description="Name shown in notifications",
    )
