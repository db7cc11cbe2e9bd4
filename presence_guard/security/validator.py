"""
Anti-spoofing validator for inbound heartbeat and status writes.

Every write path passes through this validator before reaching the presence
store. The checks are deliberately asymmetric:

    - Integrity checks fail closed. Timestamp drift, rate limit and payload
      problems raise, and the write is rejected.
    - Pattern checks fail open. Suspicious status transitions are recorded
      but never block the write, and an error inside the check allows it.

Each failed check produces a SuspiciousActivityEntry, kept in a bounded
in-memory trail and appended to the store's securityLogs collection. A
failed audit write is logged and does not change the verdict.

Example:
    >>> validator = AntiSpoofingValidator(store=store, clock=SystemClock())
    >>> try:
    ...     record = await validator.validate_heartbeat(payload)
    ... except RateLimitExceeded as e:
    ...     print(f"retry in {e.retry_after_seconds:.0f}s")
"""

from collections import Counter, OrderedDict, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from presence_guard.config.models import ValidatorSettings
from presence_guard.exceptions import (
    RateLimitExceeded,
    TimestampDriftError,
    ValidationError,
)
from presence_guard.interfaces.clock import Clock, SystemClock
from presence_guard.interfaces.presence_store import SECURITY_LOGS, PresenceStore
from presence_guard.models.base import ensure_utc
from presence_guard.models.heartbeat import HeartbeatRecord
from presence_guard.models.presence import AlertLevel, PresenceState
from presence_guard.models.security import SuspiciousActivityEntry, SuspiciousActivityType
from presence_guard.security.rate_limiter import SlidingWindowRateLimiter

logger = structlog.get_logger(__name__)


REQUIRED_HEARTBEAT_FIELDS = ("owner_id", "timestamp", "motion_count")

# Window for the repeated-transition rule
REPEATED_TRANSITION_WINDOW = timedelta(hours=1)

ClaimedTime = Union[datetime, int, float]


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _describe_payload(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, HeartbeatRecord):
        return payload.model_dump(mode="json")
    if isinstance(payload, Mapping):
        return {str(key): _json_safe(value) for key, value in payload.items()}
    return {"payload": _json_safe(payload)}


class AntiSpoofingValidator:
    """
    Gatekeeper for heartbeat and status writes.

    Attributes:
        settings: Drift, rate-limit and pattern thresholds.
        store: Presence store receiving audit entries, optional.
        rate_limiter: Per-user sliding window table.
    """

    def __init__(
        self,
        store: Optional[PresenceStore] = None,
        clock: Optional[Clock] = None,
        settings: Optional[ValidatorSettings] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        """
        Initialize the validator.

        Args:
            store: Destination for the securityLogs audit trail. Without one
                entries are only kept in memory.
            clock: Authoritative time source, system clock by default.
            settings: Validator thresholds, reference defaults if omitted.
            rate_limiter: Pre-built limiter, built from settings if omitted.
        """
        self.settings = settings or ValidatorSettings()
        self.store = store
        self._clock = clock or SystemClock()
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_requests=self.settings.rate_limit_max_requests,
            window_seconds=self.settings.rate_limit_window_seconds,
            max_tracked_keys=self.settings.max_tracked_users,
        )

        self._activities: Deque[SuspiciousActivityEntry] = deque(
            maxlen=self.settings.audit_history_size
        )
        self._activity_counts: Counter = Counter()
        self._transitions: "OrderedDict[str, Deque[Tuple[datetime, AlertLevel]]]" = OrderedDict()

        logger.info(
            "anti_spoofing_validator_initialized",
            max_drift_ms=self.settings.max_drift_ms,
            max_requests=self.settings.rate_limit_max_requests,
            window_seconds=self.settings.rate_limit_window_seconds,
            audit_to_store=store is not None,
        )

    # =========================================================================
    # AUDIT TRAIL
    # =========================================================================

    async def _record(
        self,
        activity_type: SuspiciousActivityType,
        user_id: Optional[str],
        details: Dict[str, Any],
    ) -> SuspiciousActivityEntry:
        entry = SuspiciousActivityEntry(
            type=activity_type,
            user_id=user_id,
            details=details,
            observed_at=self._clock.now(),
        )
        self._activities.append(entry)
        self._activity_counts[activity_type] += 1

        logger.warning(
            "suspicious_activity_detected",
            type=activity_type.value,
            user_id=user_id,
            blocks_write=activity_type.blocks_write,
            details=details,
        )

        if self.store is not None:
            try:
                await self.store.append(SECURITY_LOGS, entry)
            except Exception as e:
                # Audit failures never change the verdict
                logger.error(
                    "security_log_write_failed",
                    type=activity_type.value,
                    user_id=user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return entry

    def get_suspicious_activities(self, limit: int = 50) -> List[SuspiciousActivityEntry]:
        """
        Return the most recent audit entries, newest first.

        Args:
            limit: Maximum number of entries.
        """
        if limit <= 0:
            return []
        return list(self._activities)[::-1][:limit]

    def get_status(self) -> Dict[str, Any]:
        """Counters and limits for health reporting."""
        return {
            "total_suspicious_activities": sum(self._activity_counts.values()),
            "suspicious_by_type": {
                activity_type.value: count
                for activity_type, count in self._activity_counts.items()
            },
            "tracked_rate_limit_users": len(self.rate_limiter),
            "max_requests_per_window": self.settings.rate_limit_max_requests,
            "rate_limit_window_seconds": self.settings.rate_limit_window_seconds,
            "max_drift_ms": self.settings.max_drift_ms,
        }

    # =========================================================================
    # INTEGRITY CHECKS (fail closed)
    # =========================================================================

    async def validate_timestamp(
        self,
        claimed_time: ClaimedTime,
        user_id: Optional[str] = None,
    ) -> float:
        """
        Compare a claimed timestamp with the authoritative clock.

        Args:
            claimed_time: Aware/naive datetime, or epoch milliseconds.
            user_id: User the claim belongs to, for the audit entry.

        Returns:
            float: The absolute drift in milliseconds.

        Raises:
            ValidationError: If the timestamp cannot be interpreted.
            TimestampDriftError: If the drift exceeds max_drift_ms.
        """
        if isinstance(claimed_time, datetime):
            claimed = ensure_utc(claimed_time)
        elif isinstance(claimed_time, (int, float)) and not isinstance(claimed_time, bool):
            claimed = datetime.fromtimestamp(claimed_time / 1000.0, tz=timezone.utc)
        else:
            await self._record(
                SuspiciousActivityType.INVALID_HEARTBEAT_DATA,
                user_id,
                {"reason": "unreadable_timestamp", "timestamp": _json_safe(claimed_time)},
            )
            raise ValidationError("Timestamp is not a datetime or epoch milliseconds", field="timestamp")

        server_time = self._clock.now()
        drift_ms = abs((server_time - claimed).total_seconds()) * 1000.0

        if drift_ms > self.settings.max_drift_ms:
            await self._record(
                SuspiciousActivityType.TIMESTAMP_DRIFT,
                user_id,
                {
                    "claimed_time": claimed.isoformat(),
                    "server_time": server_time.isoformat(),
                    "drift_ms": round(drift_ms, 3),
                    "max_drift_ms": self.settings.max_drift_ms,
                },
            )
            raise TimestampDriftError(drift_ms, self.settings.max_drift_ms)

        return drift_ms

    async def check_rate_limit(self, user_id: str) -> None:
        """
        Count a request against the user's sliding window.

        Raises:
            RateLimitExceeded: If the window already holds the maximum number
                of accepted requests.
        """
        allowed, retry_after = self.rate_limiter.hit(user_id, self._clock.now())
        if allowed:
            return

        await self._record(
            SuspiciousActivityType.RATE_LIMIT_EXCEEDED,
            user_id,
            {
                "max_requests": self.settings.rate_limit_max_requests,
                "window_seconds": self.settings.rate_limit_window_seconds,
                "retry_after_seconds": round(retry_after, 3),
            },
        )
        raise RateLimitExceeded(user_id, retry_after)

    async def validate_payload(
        self,
        payload: Union[HeartbeatRecord, Mapping[str, Any]],
    ) -> HeartbeatRecord:
        """
        Check a heartbeat payload for sanity.

        Args:
            payload: A HeartbeatRecord or its raw mapping form.

        Returns:
            HeartbeatRecord: The parsed record.

        Raises:
            ValidationError: If required fields are missing, motion_count is
                not an integer, negative, or above the daily maximum.
        """
        details = _describe_payload(payload)

        if isinstance(payload, HeartbeatRecord):
            user_id: Optional[str] = payload.owner_id
            motion_count: Any = payload.motion_count
        elif isinstance(payload, Mapping):
            raw_owner = payload.get("owner_id")
            user_id = raw_owner if isinstance(raw_owner, str) and raw_owner else None
            missing = [
                name for name in REQUIRED_HEARTBEAT_FIELDS
                if payload.get(name) is None or payload.get(name) == ""
            ]
            if missing:
                await self._record(
                    SuspiciousActivityType.INVALID_HEARTBEAT_DATA,
                    user_id,
                    {"reason": "missing_fields", "missing": missing, **details},
                )
                raise ValidationError(
                    f"Heartbeat is missing required fields: {', '.join(missing)}",
                    field=missing[0],
                )
            motion_count = payload["motion_count"]
        else:
            await self._record(
                SuspiciousActivityType.INVALID_HEARTBEAT_DATA,
                None,
                {"reason": "not_a_mapping", **details},
            )
            raise ValidationError("Heartbeat payload must be a mapping")

        if isinstance(motion_count, bool) or not isinstance(motion_count, int):
            await self._record(
                SuspiciousActivityType.INVALID_HEARTBEAT_DATA,
                user_id,
                {"reason": "motion_count_not_integer", **details},
            )
            raise ValidationError("motion_count must be an integer", field="motion_count")

        if motion_count < 0 or motion_count > self.settings.max_daily_motion_count:
            await self._record(
                SuspiciousActivityType.ABNORMAL_MOTION_COUNT,
                user_id,
                {"max_daily_motion_count": self.settings.max_daily_motion_count, **details},
            )
            raise ValidationError(
                f"motion_count {motion_count} outside [0, {self.settings.max_daily_motion_count}]",
                field="motion_count",
            )

        if isinstance(payload, HeartbeatRecord):
            return payload

        try:
            return HeartbeatRecord.model_validate(payload)
        except PydanticValidationError as e:
            await self._record(
                SuspiciousActivityType.INVALID_HEARTBEAT_DATA,
                user_id,
                {"reason": "schema", "errors": e.error_count(), **details},
            )
            raise ValidationError(f"Malformed heartbeat: {e}") from e

    # =========================================================================
    # PATTERN CHECKS (fail open)
    # =========================================================================

    def _is_repeated_transition(self, user_id: str, new_level: AlertLevel, now: datetime) -> bool:
        history = self._transitions.get(user_id)
        if history is None:
            if len(self._transitions) >= self.settings.max_tracked_users:
                self._transitions.popitem(last=False)
            history = deque()
            self._transitions[user_id] = history
        else:
            self._transitions.move_to_end(user_id)

        cutoff = now - REPEATED_TRANSITION_WINDOW
        while history and history[0][0] <= cutoff:
            history.popleft()
        history.append((now, new_level))

        same = sum(1 for _, level in history if level == new_level)
        return same >= self.settings.repeated_transition_limit

    async def validate_status_transition(
        self,
        user_id: str,
        old_level: Optional[AlertLevel],
        new_level: AlertLevel,
        elapsed: Optional[timedelta],
    ) -> bool:
        """
        Flag suspicious level transitions without blocking them.

        Flagged patterns:
            - any transition sooner than rapid_transition_seconds after the
              previous update
            - danger -> normal sooner than danger_recovery_seconds
            - repeated transitions into the same level within one hour

        Args:
            user_id: The watched person.
            old_level: Previously stored level, None if there was none.
            new_level: Newly computed or claimed level.
            elapsed: Time since the previous update, None if unknown.

        Returns:
            bool: False when flagged, True otherwise (including on error).
        """
        try:
            if old_level is None or old_level == new_level:
                return True

            now = self._clock.now()
            reasons: List[str] = []

            if elapsed is not None:
                if elapsed < timedelta(seconds=self.settings.rapid_transition_seconds):
                    reasons.append("rapid_transition")
                if (
                    old_level == AlertLevel.DANGER
                    and new_level == AlertLevel.NORMAL
                    and elapsed < timedelta(seconds=self.settings.danger_recovery_seconds)
                ):
                    reasons.append("danger_to_normal")

            if self._is_repeated_transition(user_id, new_level, now):
                reasons.append("repeated_transition")

            if not reasons:
                return True

            await self._record(
                SuspiciousActivityType.SUSPICIOUS_STATUS_PATTERN,
                user_id,
                {
                    "old_level": old_level.value,
                    "new_level": new_level.value,
                    "elapsed_seconds": elapsed.total_seconds() if elapsed is not None else None,
                    "reasons": reasons,
                },
            )
            return False

        except Exception as e:
            logger.error(
                "status_pattern_check_failed",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return True

    # =========================================================================
    # WRITE GATES
    # =========================================================================

    async def validate_heartbeat(
        self,
        payload: Union[HeartbeatRecord, Mapping[str, Any]],
    ) -> HeartbeatRecord:
        """
        Run all heartbeat checks: payload, rate limit, then timestamp.

        Payload sanity runs first so malformed requests do not consume the
        sender's rate-limit budget.

        Returns:
            HeartbeatRecord: The accepted record.

        Raises:
            ValidationError: Malformed payload.
            RateLimitExceeded: Too many requests in the window.
            TimestampDriftError: Claimed time too far from server time.
        """
        record = await self.validate_payload(payload)
        await self.check_rate_limit(record.owner_id)
        await self.validate_timestamp(record.timestamp, user_id=record.owner_id)

        logger.debug(
            "heartbeat_validated",
            user_id=record.owner_id,
            motion_count=record.motion_count,
            source=record.source_sensor.value,
        )
        return record

    async def validate_status_update(
        self,
        user_id: str,
        new_level: AlertLevel,
        claimed_time: ClaimedTime,
        previous: Optional[PresenceState] = None,
    ) -> bool:
        """
        Gate a client-initiated status write.

        Rate limit and timestamp fail closed; the pattern check fails open.

        Args:
            user_id: The user whose status is written.
            new_level: Claimed new level.
            claimed_time: Client timestamp of the update.
            previous: Currently stored presence record, if any.

        Returns:
            bool: Result of the pattern check (False means flagged).

        Raises:
            RateLimitExceeded: Too many requests in the window.
            TimestampDriftError: Claimed time too far from server time.
        """
        await self.check_rate_limit(user_id)
        await self.validate_timestamp(claimed_time, user_id=user_id)

        old_level = previous.last_computed_level if previous is not None else None
        elapsed = previous.elapsed_since_update(self._clock.now()) if previous is not None else None
        return await self.validate_status_transition(user_id, old_level, new_level, elapsed)
