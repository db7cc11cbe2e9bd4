"""
Exception taxonomy for the liveness engine.

Integrity failures (payload, rate limit, timestamp drift) are raised by the
anti-spoofing validator and handled by the ingestion path: the heartbeat is
simply not registered. Transient failures (store, notifier) are absorbed by
the scheduler, which retries on its next tick.

Example:
    >>> try:
    ...     await validator.check_rate_limit("user-1")
    ... except RateLimitExceeded as e:
    ...     print(f"retry in {e.retry_after_seconds:.0f}s")
"""

from pathlib import Path
from typing import Optional


class PresenceGuardError(Exception):
    """Base exception for all engine errors."""

    pass


class ValidationError(PresenceGuardError):
    """
    Raised when a heartbeat or status payload is malformed.

    Attributes:
        field: Name of the offending field, if known.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)


class RateLimitExceeded(PresenceGuardError):
    """
    Raised when a user exceeds the per-minute request budget.

    Attributes:
        user_id: The rate-limited user.
        retry_after_seconds: Seconds until the oldest request leaves the window.
    """

    def __init__(self, user_id: str, retry_after_seconds: float) -> None:
        self.user_id = user_id
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded for {user_id}, retry after {retry_after_seconds:.1f}s"
        )


class TimestampDriftError(PresenceGuardError):
    """
    Raised when a claimed timestamp is too far from the authoritative clock.

    Attributes:
        drift_ms: Absolute difference in milliseconds.
        max_drift_ms: The configured tolerance.
    """

    def __init__(self, drift_ms: float, max_drift_ms: int) -> None:
        self.drift_ms = drift_ms
        self.max_drift_ms = max_drift_ms
        super().__init__(
            f"Timestamp drift {drift_ms:.0f}ms exceeds allowed {max_drift_ms}ms"
        )


class StoreUnavailable(PresenceGuardError):
    """Raised when the presence store cannot be reached or times out."""

    pass


class NotificationDeliveryFailure(PresenceGuardError):
    """
    Raised by notifiers that cannot deliver a notification.

    The dispatcher converts this into a failed delivery and rolls back
    the cooldown entry.
    """

    pass


class ConfigLoadError(PresenceGuardError):
    """
    Raised when configuration loading fails.

    Attributes:
        message: Error message describing what went wrong.
        file_path: Path to the file that caused the error, if applicable.
        cause: Original exception that caused the error, if any.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)
