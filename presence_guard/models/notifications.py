"""
Notification data models.

This module defines the structures exchanged between the escalation
scheduler and the notification dispatcher.

Models:
    CooldownKey: (observed person, alert level) de-duplication key
    CooldownEntry: Per-window record of who was notified for a key
    NotificationRequest: Escalation decision handed to the dispatcher
    DispatchOutcome: What the dispatcher did with a request
    DispatchResult: Outcome plus cooldown and delivery details
    NotificationRecord: History entry for a delivered notification

Example:
    >>> request = NotificationRequest(
    ...     observed_person_id="user-1",
    ...     level=AlertLevel.WARNING,
    ...     recipients=["observer-1"],
    ...     requested_at=datetime.now(timezone.utc),
    ... )
    >>> request.key
    CooldownKey(observed_person_id='user-1', alert_level=<AlertLevel.WARNING: 'warning'>)
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from presence_guard.models.base import ensure_utc
from presence_guard.models.presence import AlertLevel


class CooldownKey(NamedTuple):
    """De-duplication key for outbound notifications."""

    observed_person_id: str
    alert_level: AlertLevel


class CooldownEntry(BaseModel):
    """
    Marker that a notification for a key was (or is being) sent.

    Created in flight before delivery. Once delivery finishes it records
    the recipients reached; if some were missed it stays open so only
    those are retried within the window. An entry that reached nobody is
    removed. Safe to lose on restart (worst case: one extra notification).

    Attributes:
        observed_person_id: The watched person.
        alert_level: The level that was notified.
        sent_at: When the first dispatch in this window was attempted.
        window_seconds: Cooldown length for this entry.
        delivered_to: Recipients notified in this window.
        in_flight: Delivery is in progress.
        complete: Every recipient was reached.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    observed_person_id: str = Field(
        ...,
        description="The watched person",
    )
    alert_level: AlertLevel = Field(
        ...,
        description="The level that was notified",
    )
    sent_at: datetime = Field(
        ...,
        description="When the dispatch was attempted",
    )
    window_seconds: float = Field(
        ...,
        description="Cooldown length for this entry",
        gt=0,
    )
    delivered_to: Tuple[str, ...] = Field(
        default=(),
        description="Recipients notified in this window",
    )
    in_flight: bool = Field(
        default=True,
        description="Delivery is in progress",
    )
    complete: bool = Field(
        default=False,
        description="Every recipient was reached",
    )

    @property
    def key(self) -> CooldownKey:
        return CooldownKey(self.observed_person_id, self.alert_level)

    @property
    def blocks(self) -> bool:
        """True while no recipient may be (re)notified under this entry."""
        return self.in_flight or self.complete

    @property
    def expires_at(self) -> datetime:
        return self.sent_at + timedelta(seconds=self.window_seconds)

    def remaining_seconds(self, now: datetime) -> float:
        """Seconds left in the window, 0 once expired."""
        return max(0.0, (self.expires_at - now).total_seconds())

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class NotificationRequest(BaseModel):
    """
    Escalation decision for one watched person.

    Attributes:
        observed_person_id: The silent person.
        observed_name: Display name used in the notification text.
        level: Computed alert level.
        recipients: Observers to notify.
        elapsed: Silence since the last heartbeat.
        last_heartbeat_at: Time of the last heartbeat.
        requested_at: Scheduler time of the request.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    observed_person_id: str = Field(
        ...,
        description="The silent person",
        min_length=1,
    )
    observed_name: Optional[str] = Field(
        default=None,
        description="Display name used in the notification text",
    )
    level: AlertLevel = Field(
        ...,
        description="Computed alert level",
    )
    recipients: List[str] = Field(
        default_factory=list,
        description="Observers to notify",
    )
    elapsed: Optional[timedelta] = Field(
        default=None,
        description="Silence since the last heartbeat",
    )
    last_heartbeat_at: Optional[datetime] = Field(
        default=None,
        description="Time of the last heartbeat",
    )
    requested_at: datetime = Field(
        ...,
        description="Scheduler time of the request",
    )

    @field_validator("last_heartbeat_at", "requested_at", mode="after")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Interpret naive timestamps as UTC."""
        return ensure_utc(v)

    @property
    def key(self) -> CooldownKey:
        return CooldownKey(self.observed_person_id, self.level)


class DispatchOutcome(str, Enum):
    """
    What the dispatcher did with a request.

    Attributes:
        SENT: Delivered to every recipient; cooldown held.
        COOLDOWN: Blocked by an active cooldown entry.
        FAILED: At least one delivery failed; only missed recipients are retried.
        DEFERRED: Held back by quiet hours; retried on a later tick.
        SKIPPED: Level is not actionable or there are no recipients.
    """

    SENT = "sent"
    COOLDOWN = "cooldown"
    FAILED = "failed"
    DEFERRED = "deferred"
    SKIPPED = "skipped"


class DispatchResult(BaseModel):
    """Result of a dispatch attempt."""

    model_config = {"frozen": True, "extra": "forbid"}

    outcome: DispatchOutcome = Field(
        ...,
        description="What the dispatcher did",
    )
    key: CooldownKey = Field(
        ...,
        description="Cooldown key of the request",
    )
    remaining_seconds: Optional[float] = Field(
        default=None,
        description="Cooldown time left when blocked",
    )
    delivered_to: List[str] = Field(
        default_factory=list,
        description="Recipients that received the notification",
    )
    failed_for: List[str] = Field(
        default_factory=list,
        description="Recipients whose delivery failed",
    )

    @property
    def was_sent(self) -> bool:
        return self.outcome == DispatchOutcome.SENT


class NotificationRecord(BaseModel):
    """History entry for a delivered notification."""

    model_config = {"frozen": True, "extra": "forbid"}

    observed_person_id: str
    level: AlertLevel
    recipients: List[str]
    title: str
    body: str
    sent_at: datetime
