"""
Shared helpers for the data models.

All timestamps handled by the engine are timezone-aware UTC datetimes.
Naive values coming from payloads or configuration are interpreted as UTC.
"""

from datetime import datetime, timezone
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def ensure_utc(value: Any) -> Any:
    """
    Normalize a datetime to aware UTC.

    Non-datetime values are returned unchanged so pydantic can report
    them with its usual error.

    Args:
        value: Candidate timestamp.

    Returns:
        The UTC datetime, or the original value.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


def to_epoch_ms(value: datetime) -> float:
    """Milliseconds since the Unix epoch."""
    return ensure_utc(value).timestamp() * 1000.0
