"""
Heartbeat emitter.

Turns bursts of raw device signals into rate-controlled liveness evidence
for one watched person. A motion event is accepted only when:

    1. the emitter is not paused,
    2. at least ``motion_cooldown_seconds`` passed since the last accepted
       motion, and
    3. fewer than ``max_motions_per_hour`` motions were accepted in the
       current wall-clock hour.

Each accepted motion emits a heartbeat immediately and starts periodic
emission if it is not already running. The periodic heartbeat is emitted
every ``periodic_interval_seconds`` so a stationary but reachable device
still reports. A heartbeat that cannot be
delivered is dropped, never queued: the next motion or period retries.

Example:
    >>> emitter = HeartbeatEmitter(owner_id="user-1", sink=ingestor)
    >>> await emitter.start()
    >>> await emitter.on_motion(MotionEvent(intensity=3.2))
    True
    >>> await emitter.send_now()
    >>> await emitter.stop()
"""

import asyncio
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Protocol, Union

import structlog

from presence_guard.config.models import HeartbeatSettings
from presence_guard.interfaces.clock import Clock, SystemClock
from presence_guard.models.heartbeat import (
    DeviceDescriptor,
    HeartbeatRecord,
    MotionEvent,
    SensorSource,
)

logger = structlog.get_logger(__name__)


class HeartbeatSink(Protocol):
    """
    Destination for emitted heartbeats.

    HeartbeatIngestor in-process; a thin network client on real devices.
    """

    async def submit(self, payload: Union[HeartbeatRecord, Mapping[str, Any]]) -> bool:
        """Deliver a heartbeat. Returns False when it was rejected."""
        ...


class HeartbeatEmitter:
    """
    Emits heartbeats for one watched person.

    Attributes:
        owner_id: The watched person.
        settings: Cooldown, hourly cap and periodic interval.
        device: Metadata attached to every heartbeat.
        motion_count: Accepted motions today.
        last_motion_at: Time of the last accepted motion.
        hourly_count: Accepted motions in the current hour bucket.
        paused: Whether motion and periodic emission are suspended.
    """

    def __init__(
        self,
        owner_id: str,
        sink: HeartbeatSink,
        clock: Optional[Clock] = None,
        settings: Optional[HeartbeatSettings] = None,
        device: Optional[DeviceDescriptor] = None,
    ) -> None:
        """
        Initialize the emitter.

        Args:
            owner_id: The watched person emitting heartbeats.
            sink: Where heartbeats are delivered.
            clock: Time source, system clock by default.
            settings: Emission limits, reference defaults if omitted.
            device: Device metadata for emitted records.
        """
        self.owner_id = owner_id
        self.sink = sink
        self.settings = settings or HeartbeatSettings()
        self.device = device or DeviceDescriptor()
        self._clock = clock or SystemClock()

        now = self._clock.now()
        self.motion_count = 0
        self.last_motion_at: Optional[datetime] = None
        self.hour_bucket: datetime = self._hour_of(now)
        self.hourly_count = 0
        self.paused = False
        self._day: date = now.date()

        self._emitted = 0
        self._dropped = 0
        self._periodic_task: Optional[asyncio.Task] = None
        self._stopped = False

    @staticmethod
    def _hour_of(moment: datetime) -> datetime:
        return moment.replace(minute=0, second=0, microsecond=0)

    def _roll_counters(self, now: datetime) -> None:
        """Reset the hourly and daily counters on bucket change."""
        bucket = self._hour_of(now)
        if bucket != self.hour_bucket:
            self.hour_bucket = bucket
            self.hourly_count = 0
            logger.debug("motion_hour_bucket_reset", owner_id=self.owner_id, hour=bucket.hour)

        if now.date() != self._day:
            self._day = now.date()
            self.motion_count = 0
            logger.debug("motion_daily_count_reset", owner_id=self.owner_id)

    # =========================================================================
    # MOTION INPUT
    # =========================================================================

    async def on_motion(self, event: MotionEvent) -> bool:
        """
        Handle a raw motion, orientation or touch signal.

        Args:
            event: The observed signal.

        Returns:
            bool: True if the event was accepted and a heartbeat emitted.
        """
        if self.paused:
            return False
        if event.intensity < self.settings.min_intensity:
            return False

        now = self._clock.now()
        self._roll_counters(now)

        if self.last_motion_at is not None:
            since_last = now - self.last_motion_at
            if since_last < timedelta(seconds=self.settings.motion_cooldown_seconds):
                return False

        if self.hourly_count >= self.settings.max_motions_per_hour:
            logger.debug(
                "motion_hourly_cap_reached",
                owner_id=self.owner_id,
                hourly_count=self.hourly_count,
            )
            return False

        self.motion_count += 1
        self.hourly_count += 1
        self.last_motion_at = now

        source = event.sensor if event.sensor.is_motion_derived else SensorSource.MOTION
        await self._emit(source, now)

        if not self.is_running and not self._stopped:
            # The motion heartbeat just went out, so the first period waits
            self._start_periodic(emit_first=False)
        return True

    async def send_now(self) -> bool:
        """
        Emit a manual heartbeat immediately.

        Bypasses the motion cooldown and hourly cap, and reports at least
        one motion so the record reads as active.

        Returns:
            bool: True if delivered and accepted.
        """
        now = self._clock.now()
        self._roll_counters(now)
        self.motion_count = max(1, self.motion_count)
        return await self._emit(SensorSource.MANUAL, now)

    # =========================================================================
    # PAUSE / RESUME
    # =========================================================================

    def pause(self) -> None:
        """Suspend motion acceptance and periodic emission."""
        self.paused = True
        logger.info("heartbeat_emitter_paused", owner_id=self.owner_id)

    def resume(self) -> None:
        self.paused = False
        logger.info("heartbeat_emitter_resumed", owner_id=self.owner_id)

    def update_settings(self, **changes: Any) -> HeartbeatSettings:
        """
        Replace individual emission settings at runtime.

        Example:
            >>> emitter.update_settings(max_motions_per_hour=20)
        """
        self.settings = HeartbeatSettings(**{**self.settings.model_dump(), **changes})
        logger.info("heartbeat_settings_updated", owner_id=self.owner_id, **changes)
        return self.settings

    # =========================================================================
    # EMISSION
    # =========================================================================

    async def _emit(self, source: SensorSource, now: datetime) -> bool:
        record = HeartbeatRecord(
            owner_id=self.owner_id,
            timestamp=now,
            motion_count=self.motion_count,
            source_sensor=source,
            device=self.device,
        )

        try:
            accepted = await self.sink.submit(record)
        except Exception as e:
            self._dropped += 1
            logger.warning(
                "heartbeat_dropped",
                owner_id=self.owner_id,
                source=source.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if not accepted:
            self._dropped += 1
            logger.warning(
                "heartbeat_dropped",
                owner_id=self.owner_id,
                source=source.value,
                reason="rejected",
            )
            return False

        self._emitted += 1
        logger.debug(
            "heartbeat_emitted",
            owner_id=self.owner_id,
            source=source.value,
            motion_count=self.motion_count,
        )
        return True

    async def _periodic_loop(self, emit_first: bool = True) -> None:
        """Emit a periodic heartbeat every interval while not paused."""
        try:
            if not emit_first:
                await asyncio.sleep(self.settings.periodic_interval_seconds)
            while True:
                if self.paused:
                    logger.debug("periodic_heartbeat_skipped", owner_id=self.owner_id)
                else:
                    now = self._clock.now()
                    self._roll_counters(now)
                    await self._emit(SensorSource.PERIODIC, now)
                await asyncio.sleep(self.settings.periodic_interval_seconds)
        except asyncio.CancelledError:
            logger.debug("periodic_heartbeat_cancelled", owner_id=self.owner_id)
            raise

    @property
    def is_running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    def _start_periodic(self, emit_first: bool) -> None:
        self._periodic_task = asyncio.create_task(self._periodic_loop(emit_first))
        logger.info(
            "heartbeat_emitter_started",
            owner_id=self.owner_id,
            interval_seconds=self.settings.periodic_interval_seconds,
            emit_first=emit_first,
        )

    async def start(self) -> None:
        """
        Start periodic emission. A heartbeat is emitted right away.

        The first accepted motion also starts periodic emission, unless the
        emitter was stopped explicitly.
        """
        self._stopped = False
        if self.is_running:
            logger.warning("heartbeat_emitter_already_running", owner_id=self.owner_id)
            return
        self._start_periodic(emit_first=True)

    async def stop(self) -> None:
        """Cancel periodic emission. Safe to call when not running."""
        self._stopped = True
        task = self._periodic_task
        self._periodic_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("heartbeat_emitter_stopped", owner_id=self.owner_id)

    def get_status(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "paused": self.paused,
            "running": self.is_running,
            "motion_count": self.motion_count,
            "hourly_count": self.hourly_count,
            "max_motions_per_hour": self.settings.max_motions_per_hour,
            "last_motion_at": self.last_motion_at.isoformat() if self.last_motion_at else None,
            "emitted": self._emitted,
            "dropped": self._dropped,
        }
