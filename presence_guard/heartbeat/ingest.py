"""
Heartbeat ingestion path.

The only way a heartbeat reaches the presence store: the payload is gated
by the anti-spoofing validator and, if accepted, appended to the heartbeats
collection. Integrity rejections are handled here (logged and counted, the
heartbeat is simply not registered). Store failures propagate as
StoreUnavailable so the caller can drop the heartbeat.

Example:
    >>> ingestor = HeartbeatIngestor(validator=validator, store=store)
    >>> accepted = await ingestor.submit({"owner_id": "u1", ...})
"""

import asyncio
from collections import Counter
from typing import Any, Dict, Mapping, Optional, Union

import structlog

from presence_guard.exceptions import (
    RateLimitExceeded,
    StoreUnavailable,
    TimestampDriftError,
    ValidationError,
)
from presence_guard.interfaces.presence_store import HEARTBEATS, PresenceStore
from presence_guard.models.heartbeat import HeartbeatRecord
from presence_guard.security.validator import AntiSpoofingValidator

logger = structlog.get_logger(__name__)


class HeartbeatIngestor:
    """
    Validates heartbeats and appends the accepted ones to the store.

    Attributes:
        validator: Anti-spoofing gate.
        store: Presence store receiving accepted heartbeats.
        store_timeout_seconds: Bound on the append call, None for no bound.
    """

    def __init__(
        self,
        validator: AntiSpoofingValidator,
        store: PresenceStore,
        store_timeout_seconds: Optional[float] = None,
    ) -> None:
        self.validator = validator
        self.store = store
        self.store_timeout_seconds = store_timeout_seconds
        self._accepted = 0
        self._rejected: Counter = Counter()

    async def submit(self, payload: Union[HeartbeatRecord, Mapping[str, Any]]) -> bool:
        """
        Validate and store one heartbeat.

        Args:
            payload: HeartbeatRecord or its raw mapping form.

        Returns:
            bool: True if stored, False if rejected by the validator.

        Raises:
            StoreUnavailable: If the append fails or times out.
        """
        try:
            record = await self.validator.validate_heartbeat(payload)
        except (ValidationError, RateLimitExceeded, TimestampDriftError) as e:
            reason = type(e).__name__
            self._rejected[reason] += 1
            logger.info(
                "heartbeat_rejected",
                reason=reason,
                error=str(e),
            )
            return False

        try:
            if self.store_timeout_seconds is None:
                await self.store.append(HEARTBEATS, record)
            else:
                await asyncio.wait_for(
                    self.store.append(HEARTBEATS, record),
                    timeout=self.store_timeout_seconds,
                )
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(
                f"Heartbeat append timed out after {self.store_timeout_seconds}s"
            ) from e

        self._accepted += 1
        logger.info(
            "heartbeat_accepted",
            user_id=record.owner_id,
            heartbeat_id=record.heartbeat_id,
            motion_count=record.motion_count,
            source=record.source_sensor.value,
        )
        return True

    def get_stats(self) -> Dict[str, Any]:
        return {
            "accepted": self._accepted,
            "rejected": dict(self._rejected),
        }
