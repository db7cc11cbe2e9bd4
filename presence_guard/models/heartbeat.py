"""
Heartbeat data models.

This module defines the liveness evidence produced on a watched person's
device: raw motion events and the heartbeat records derived from them.

Models:
    SensorSource: Which signal produced a heartbeat
    DeviceDescriptor: Descriptive metadata about the emitting device
    MotionEvent: A raw motion, orientation or touch signal
    HeartbeatRecord: Immutable, append-only liveness record

Example:
    >>> record = HeartbeatRecord(
    ...     owner_id="user-1",
    ...     timestamp=datetime.now(timezone.utc),
    ...     motion_count=3,
    ...     source_sensor=SensorSource.MOTION,
    ... )
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from presence_guard.models.base import ensure_utc


class SensorSource(str, Enum):
    """
    Signal that produced a heartbeat.

    Attributes:
        MOTION: Accelerometer delta.
        ORIENTATION: Gyroscope / orientation change.
        TOUCH: Screen interaction.
        PERIODIC: Background timer, independent of motion.
        MANUAL: Explicit "I'm OK" action by the user.
    """

    MOTION = "motion"
    ORIENTATION = "orientation"
    TOUCH = "touch"
    PERIODIC = "periodic"
    MANUAL = "manual"

    @property
    def is_motion_derived(self) -> bool:
        """Check if this source comes from a physical interaction."""
        return self in (SensorSource.MOTION, SensorSource.ORIENTATION, SensorSource.TOUCH)


class DeviceDescriptor(BaseModel):
    """Descriptive metadata about the device that emitted a heartbeat."""

    model_config = {"frozen": True, "extra": "forbid"}

    platform: str = Field(
        default="unknown",
        description="Platform name (android, ios, web)",
    )
    model: Optional[str] = Field(
        default=None,
        description="Device model",
    )
    app_version: Optional[str] = Field(
        default=None,
        description="Client application version",
    )
    user_agent: Optional[str] = Field(
        default=None,
        description="Client user agent string",
    )


class MotionEvent(BaseModel):
    """
    A raw signal observed on the device.

    Attributes:
        sensor: Which sensor fired.
        intensity: Magnitude of the change (acceleration delta, angle, ...).
        observed_at: When the device observed it; the emitter's clock is
            used when absent.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    sensor: SensorSource = Field(
        default=SensorSource.MOTION,
        description="Which sensor fired",
    )
    intensity: float = Field(
        default=1.0,
        description="Magnitude of the change",
        ge=0.0,
    )
    observed_at: Optional[datetime] = Field(
        default=None,
        description="Device observation time",
    )

    @field_validator("observed_at", mode="after")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Interpret naive timestamps as UTC."""
        return ensure_utc(v)


class HeartbeatRecord(BaseModel):
    """
    Liveness evidence for one user.

    Immutable once written and append-only. The sign and range of
    motion_count are deliberately not constrained here: the anti-spoofing
    validator owns that check so it can log the violation.

    Attributes:
        heartbeat_id: Unique record identifier.
        owner_id: The watched person who emitted the heartbeat.
        timestamp: Claimed emission time (checked against server time).
        motion_count: Accepted motion events today.
        source_sensor: Signal that produced this heartbeat.
        device: Emitting device metadata.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    heartbeat_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique record identifier",
    )
    owner_id: str = Field(
        ...,
        description="The watched person who emitted the heartbeat",
        min_length=1,
    )
    timestamp: datetime = Field(
        ...,
        description="Claimed emission time",
    )
    motion_count: int = Field(
        ...,
        description="Accepted motion events today",
    )
    source_sensor: SensorSource = Field(
        default=SensorSource.MOTION,
        description="Signal that produced this heartbeat",
    )
    device: DeviceDescriptor = Field(
        default_factory=DeviceDescriptor,
        description="Emitting device metadata",
    )

    @field_validator("timestamp", mode="after")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Interpret naive timestamps as UTC."""
        return ensure_utc(v)

    @property
    def partition_key(self) -> str:
        return self.owner_id

    @property
    def sort_key(self) -> datetime:
        return self.timestamp
