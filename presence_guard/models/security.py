"""
Security audit models.

Models:
    SuspiciousActivityType: Which integrity check failed
    SuspiciousActivityEntry: Append-only audit record
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from presence_guard.models.base import ensure_utc


class SuspiciousActivityType(str, Enum):
    """Kinds of suspicious activity recorded by the validator."""

    TIMESTAMP_DRIFT = "TIMESTAMP_DRIFT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_HEARTBEAT_DATA = "INVALID_HEARTBEAT_DATA"
    ABNORMAL_MOTION_COUNT = "ABNORMAL_MOTION_COUNT"
    SUSPICIOUS_STATUS_PATTERN = "SUSPICIOUS_STATUS_PATTERN"

    @property
    def blocks_write(self) -> bool:
        """Check if this failure rejects the write (fail-closed)."""
        return self != SuspiciousActivityType.SUSPICIOUS_STATUS_PATTERN


# Partition used for entries that cannot be attributed to a user
ANONYMOUS_USER = "anonymous"


class SuspiciousActivityEntry(BaseModel):
    """
    Audit trail entry written whenever an integrity check fails.

    Never mutated. Stored in the securityLogs collection.

    Attributes:
        entry_id: Unique entry identifier.
        type: Which check failed.
        user_id: Affected user, if the payload identified one.
        details: Check-specific context (drift, counts, levels).
        observed_at: Authoritative time of the failure.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    entry_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique entry identifier",
    )
    type: SuspiciousActivityType = Field(
        ...,
        description="Which check failed",
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Affected user",
    )
    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Check-specific context",
    )
    observed_at: datetime = Field(
        ...,
        description="Authoritative time of the failure",
    )

    @field_validator("observed_at", mode="after")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Interpret naive timestamps as UTC."""
        return ensure_utc(v)

    @property
    def partition_key(self) -> str:
        return self.user_id or ANONYMOUS_USER

    @property
    def sort_key(self) -> datetime:
        return self.observed_at
