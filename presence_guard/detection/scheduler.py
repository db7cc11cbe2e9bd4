"""
Escalation scheduler.

Periodic, idempotent poll loop. Each tick re-derives every watched person's
alert level from the presence store and asks the dispatcher to notify the
people watching them. The scheduler never suppresses repeat requests;
de-duplication is entirely the dispatcher's cooldown. A manual refresh runs
exactly the same code as a timer tick.

A tick never fails as a whole because of one person: store reads are
bounded by a timeout, and a timeout, StoreUnavailable or any other error
while evaluating a person skips that person until the next tick.

Example:
    >>> scheduler = EscalationScheduler(
    ...     store=store,
    ...     directory=directory,
    ...     thresholds=provider,
    ...     dispatcher=dispatcher,
    ...     validator=validator,
    ... )
    >>> summary = await scheduler.tick()
    >>> summary.notifications_sent
    1
    >>> await scheduler.start()
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from presence_guard.config.models import SchedulerSettings, ThresholdConfig
from presence_guard.config.thresholds import ThresholdConfigProvider
from presence_guard.detection.classifier import AlertClassifier
from presence_guard.detection.dispatcher import NotificationDispatcher
from presence_guard.exceptions import StoreUnavailable
from presence_guard.interfaces.clock import Clock, SystemClock
from presence_guard.interfaces.friend_directory import FriendDirectory
from presence_guard.interfaces.presence_store import HEARTBEATS, USER_STATUS, PresenceStore
from presence_guard.models.heartbeat import HeartbeatRecord
from presence_guard.models.notifications import DispatchOutcome, NotificationRequest
from presence_guard.models.presence import AlertLevel, PresenceState
from presence_guard.security.validator import AntiSpoofingValidator

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class WatchGroup(BaseModel):
    """A watched person and the observers watching them."""

    user_id: str
    display_name: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)


class TickSummary(BaseModel):
    """
    Result of one scheduler tick.

    Attributes:
        started_at: Tick time used for every classification.
        observers: Observers listed by the friend directory.
        persons: Distinct watched people.
        evaluated: People whose level was computed.
        skipped: People skipped because of store failures.
        levels: Count of computed levels.
        outcomes: Count of dispatch outcomes.
        duration_seconds: Wall time spent in the tick.
    """

    started_at: datetime
    observers: int = 0
    persons: int = 0
    evaluated: int = 0
    skipped: int = 0
    levels: Dict[str, int] = Field(default_factory=dict)
    outcomes: Dict[str, int] = Field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def notifications_sent(self) -> int:
        return self.outcomes.get(DispatchOutcome.SENT.value, 0)


class EscalationScheduler:
    """
    Periodic presence re-evaluation.

    Attributes:
        store: Presence store with heartbeats and presence records.
        directory: Observer to watched-person links.
        thresholds: Threshold provider.
        dispatcher: Notification dispatcher.
        validator: Optional pattern checker for level transitions.
        classifier: Alert classifier.
        settings: Tick interval and store timeout.
    """

    def __init__(
        self,
        store: PresenceStore,
        directory: FriendDirectory,
        thresholds: ThresholdConfigProvider,
        dispatcher: NotificationDispatcher,
        validator: Optional[AntiSpoofingValidator] = None,
        classifier: Optional[AlertClassifier] = None,
        settings: Optional[SchedulerSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.thresholds = thresholds
        self.dispatcher = dispatcher
        self.validator = validator
        self.classifier = classifier or AlertClassifier()
        self.settings = settings or SchedulerSettings()
        self._clock = clock or SystemClock()
        self._task: Optional[asyncio.Task] = None
        self._ticks = 0
        self._last_summary: Optional[TickSummary] = None

        logger.info(
            "escalation_scheduler_initialized",
            tick_interval_seconds=self.settings.tick_interval_seconds,
            store_timeout_seconds=self.settings.store_timeout_seconds,
            pattern_checks=validator is not None,
        )

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        """Await a store call within the configured timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.store_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(
                f"Store call timed out after {self.settings.store_timeout_seconds}s"
            ) from e

    # =========================================================================
    # TICK
    # =========================================================================

    async def _collect_watch_groups(self, summary: TickSummary) -> Dict[str, WatchGroup]:
        """Group observers by the person they watch."""
        groups: Dict[str, WatchGroup] = {}

        try:
            observers = await self._bounded(self.directory.list_observers())
        except StoreUnavailable as e:
            logger.warning("observer_listing_failed", error=str(e))
            return groups

        summary.observers = len(observers)
        for observer_id in observers:
            try:
                friends = await self._bounded(self.directory.get_friends(observer_id))
            except StoreUnavailable as e:
                logger.warning("observer_skipped", observer_id=observer_id, error=str(e))
                continue

            for friend in friends:
                group = groups.get(friend.user_id)
                if group is None:
                    group = WatchGroup(user_id=friend.user_id)
                    groups[friend.user_id] = group
                if group.display_name is None and friend.display_name:
                    group.display_name = friend.display_name
                if observer_id not in group.recipients:
                    group.recipients.append(observer_id)

        return groups

    async def _read_state(self, user_id: str) -> Optional[PresenceState]:
        raw = await self._bounded(self.store.get_latest(USER_STATUS, user_id))
        if raw is None:
            return None
        try:
            return PresenceState.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning("presence_state_invalid", user_id=user_id, error=str(e))
            return None

    async def _read_last_heartbeat(
        self,
        user_id: str,
        previous: Optional[PresenceState],
    ) -> Optional[datetime]:
        raw = await self._bounded(self.store.get_latest(HEARTBEATS, user_id))
        fallback = previous.last_heartbeat_at if previous is not None else None
        if raw is None:
            return fallback
        try:
            return HeartbeatRecord.model_validate(raw).timestamp
        except PydanticValidationError as e:
            logger.warning("heartbeat_record_invalid", user_id=user_id, error=str(e))
            return fallback

    async def _evaluate(
        self,
        group: WatchGroup,
        thresholds: ThresholdConfig,
        now: datetime,
        summary: TickSummary,
    ) -> None:
        """Re-derive one person's level and request a notification if due."""
        user_id = group.user_id
        previous = await self._read_state(user_id)
        last_heartbeat_at = await self._read_last_heartbeat(user_id, previous)

        elapsed: Optional[timedelta] = None
        if last_heartbeat_at is not None:
            elapsed = now - last_heartbeat_at
        level = self.classifier.classify(elapsed, thresholds)

        summary.evaluated += 1
        summary.levels[level.value] = summary.levels.get(level.value, 0) + 1

        if previous is not None and previous.last_computed_level != level:
            logger.info(
                "presence_level_changed",
                user_id=user_id,
                previous_level=previous.last_computed_level.value,
                level=level.value,
                elapsed_seconds=elapsed.total_seconds() if elapsed is not None else None,
            )
            if self.validator is not None:
                # Flags only, the new level is applied either way
                await self.validator.validate_status_transition(
                    user_id,
                    previous.last_computed_level,
                    level,
                    previous.elapsed_since_update(now),
                )

        state = (previous or PresenceState(user_id=user_id)).advance(level, last_heartbeat_at, now)
        try:
            await self._bounded(self.store.put(USER_STATUS, user_id, state))
        except StoreUnavailable as e:
            logger.warning("presence_state_write_failed", user_id=user_id, error=str(e))

        if not level.is_actionable:
            return

        request = NotificationRequest(
            observed_person_id=user_id,
            observed_name=group.display_name,
            level=level,
            recipients=group.recipients,
            elapsed=elapsed,
            last_heartbeat_at=last_heartbeat_at,
            requested_at=now,
        )
        result = await self.dispatcher.dispatch(request, now=now)
        outcome = result.outcome.value
        summary.outcomes[outcome] = summary.outcomes.get(outcome, 0) + 1

    async def tick(self, now: Optional[datetime] = None) -> TickSummary:
        """
        Run one full evaluation pass.

        Args:
            now: Evaluation time, clock time by default.

        Returns:
            TickSummary: Counts of what was evaluated and dispatched.
        """
        now = now or self._clock.now()
        loop = asyncio.get_running_loop()
        started = loop.time()
        summary = TickSummary(started_at=now)

        thresholds = await self.thresholds.get_thresholds()
        groups = await self._collect_watch_groups(summary)
        summary.persons = len(groups)

        for group in groups.values():
            try:
                await self._evaluate(group, thresholds, now, summary)
            except StoreUnavailable as e:
                summary.skipped += 1
                logger.warning("person_skipped", user_id=group.user_id, error=str(e))
            except Exception as e:
                summary.skipped += 1
                logger.error(
                    "person_evaluation_failed",
                    user_id=group.user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        summary.duration_seconds = loop.time() - started
        self._ticks += 1
        self._last_summary = summary

        logger.info(
            "escalation_tick_completed",
            observers=summary.observers,
            persons=summary.persons,
            evaluated=summary.evaluated,
            skipped=summary.skipped,
            levels=summary.levels,
            outcomes=summary.outcomes,
            duration_seconds=round(summary.duration_seconds, 3),
        )
        return summary

    async def refresh_now(self) -> TickSummary:
        """Manual trigger. Identical to a timer-driven tick."""
        return await self.tick()

    # =========================================================================
    # PERIODIC LOOP
    # =========================================================================

    async def _loop(self) -> None:
        try:
            while True:
                try:
                    await self.tick()
                except Exception as e:
                    logger.error(
                        "escalation_tick_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                await asyncio.sleep(self.settings.tick_interval_seconds)
        except asyncio.CancelledError:
            logger.debug("escalation_loop_cancelled")
            raise

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the periodic loop. The first tick runs immediately."""
        if self.is_running:
            logger.warning("escalation_scheduler_already_running")
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "escalation_scheduler_started",
            tick_interval_seconds=self.settings.tick_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel the periodic loop. Safe to call when not running."""
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("escalation_scheduler_stopped", ticks=self._ticks)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "ticks": self._ticks,
            "last_tick": self._last_summary.model_dump(mode="json") if self._last_summary else None,
        }
