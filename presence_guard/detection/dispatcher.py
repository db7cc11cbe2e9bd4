"""
Notification dispatcher.

Turns escalation requests into at most one delivered notification per
(observed person, alert level) per cooldown window, and hands delivery to a
platform notifier.

Algorithm:
    1. Non-actionable levels and requests without recipients are skipped.
    2. During quiet hours, non-emergency requests are deferred without
       touching the cooldown table; the next scheduler tick asks again.
    3. An active cooldown entry blocks the request and reports the
       remaining time, unless an earlier round missed some recipients.
    4. Otherwise the cooldown entry is written first, then every recipient
       not yet reached in this window is notified (each call bounded by a
       timeout).
    5. The entry records who was reached. Recipients whose delivery failed
       are retried on the next request; the others are not notified again
       until the window expires. An entry that reached nobody is removed.

Example:
    >>> dispatcher = NotificationDispatcher(notifier=LogNotifier())
    >>> result = await dispatcher.dispatch(request)
    >>> result.outcome
    <DispatchOutcome.SENT: 'sent'>
"""

import asyncio
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional, Tuple

import structlog

from presence_guard.config.models import DispatcherSettings
from presence_guard.detection.classifier import AlertClassifier
from presence_guard.detection.cooldown import CooldownTable
from presence_guard.exceptions import NotificationDeliveryFailure
from presence_guard.interfaces.clock import Clock, SystemClock
from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.models.notifications import (
    CooldownEntry,
    CooldownKey,
    DispatchOutcome,
    DispatchResult,
    NotificationRecord,
    NotificationRequest,
)
from presence_guard.models.presence import AlertLevel

logger = structlog.get_logger(__name__)


# Title and advice templates per level
MESSAGE_TEMPLATES: Dict[AlertLevel, Tuple[str, str]] = {
    AlertLevel.WARNING: (
        "Check on {name}",
        "Consider reaching out.",
    ),
    AlertLevel.DANGER: (
        "{name} may need help",
        "Please contact them now.",
    ),
    AlertLevel.EMERGENCY: (
        "Emergency: {name} is unreachable",
        "Contact them immediately or call emergency services.",
    ),
}

SILENCE_TEMPLATE = "{name} has shown no activity for {duration}."
NO_ACTIVITY_TEMPLATE = "{name} has no recorded activity."


class NotificationDispatcher:
    """
    Cooldown-guarded notification delivery.

    Attributes:
        notifier: Platform notifier used for delivery.
        settings: Cooldown windows, timeouts, quiet hours.
        cooldowns: Cooldown entry table.
    """

    def __init__(
        self,
        notifier: PlatformNotifier,
        settings: Optional[DispatcherSettings] = None,
        clock: Optional[Clock] = None,
        cooldowns: Optional[CooldownTable] = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            notifier: Platform notifier for delivery.
            settings: Dispatcher settings, reference defaults if omitted.
            clock: Time source, system clock by default.
            cooldowns: Pre-built cooldown table, built from settings if omitted.
        """
        self.notifier = notifier
        self.settings = settings or DispatcherSettings()
        self._clock = clock or SystemClock()
        self.cooldowns = cooldowns or CooldownTable(max_entries=self.settings.max_tracked_keys)
        self._history: Deque[NotificationRecord] = deque(maxlen=self.settings.history_size)
        self._outcomes: Dict[DispatchOutcome, int] = {outcome: 0 for outcome in DispatchOutcome}

        logger.info(
            "notification_dispatcher_initialized",
            notifier=notifier.name,
            cooldown_seconds=self.settings.cooldown_seconds,
            level_overrides={
                level.value: seconds
                for level, seconds in self.settings.level_cooldown_seconds.items()
            },
            quiet_hours_enabled=self.settings.quiet_hours.enabled,
        )

    # =========================================================================
    # COOLDOWN
    # =========================================================================

    def can_send(self, key: CooldownKey, now: Optional[datetime] = None) -> Tuple[bool, float]:
        """
        Check whether a request for a key would reach anyone.

        A key whose last round missed some recipients is allowed so those
        can be retried.

        Args:
            key: (observed person, level).
            now: Check time, clock time by default.

        Returns:
            Tuple of (allowed, remaining_seconds).
        """
        now = now or self._clock.now()
        entry = self.cooldowns.get(key, now)
        if entry is None or not entry.blocks:
            return True, 0.0
        return False, entry.remaining_seconds(now)

    def reset_cooldown(self, observed_person_id: str, level: Optional[AlertLevel] = None) -> int:
        """
        Clear cooldown entries for a person.

        Args:
            observed_person_id: The watched person.
            level: A single level to clear, all levels if None.

        Returns:
            int: Number of entries removed.
        """
        levels = [level] if level is not None else [
            lvl for lvl in AlertLevel if lvl.is_actionable
        ]
        removed = sum(
            1 for lvl in levels if self.cooldowns.release(CooldownKey(observed_person_id, lvl))
        )
        logger.info(
            "cooldown_reset",
            observed_person_id=observed_person_id,
            level=level.value if level is not None else "all",
            removed=removed,
        )
        return removed

    def cooldown_status(self, now: Optional[datetime] = None) -> Dict[str, float]:
        """Remaining cooldown seconds per "person:level", expired ones purged."""
        return self.cooldowns.snapshot(now or self._clock.now())

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def is_quiet_time(self, now: datetime) -> bool:
        quiet = self.settings.quiet_hours
        local = now + timedelta(hours=quiet.utc_offset_hours)
        return quiet.is_quiet(local.hour)

    @staticmethod
    def render(request: NotificationRequest) -> Tuple[str, str]:
        """
        Build the notification title and body for a request.

        Returns:
            Tuple of (title, body).
        """
        name = request.observed_name or request.observed_person_id
        title_template, advice = MESSAGE_TEMPLATES.get(
            request.level,
            ("Activity update for {name}", ""),
        )
        if request.elapsed is None:
            silence = NO_ACTIVITY_TEMPLATE.format(name=name)
        else:
            silence = SILENCE_TEMPLATE.format(
                name=name, duration=AlertClassifier.describe(request.elapsed)
            )
        body = f"{silence} {advice}" if advice else silence
        return title_template.format(name=name), body

    def _result(self, outcome: DispatchOutcome, key: CooldownKey, **kwargs: Any) -> DispatchResult:
        self._outcomes[outcome] += 1
        return DispatchResult(outcome=outcome, key=key, **kwargs)

    def _cooldown(
        self,
        request: NotificationRequest,
        entry: CooldownEntry,
        now: datetime,
    ) -> DispatchResult:
        remaining = entry.remaining_seconds(now)
        logger.debug(
            "notification_cooldown_active",
            observed_person_id=request.observed_person_id,
            level=request.level.value,
            remaining_seconds=round(remaining, 1),
        )
        return self._result(DispatchOutcome.COOLDOWN, request.key, remaining_seconds=remaining)

    async def dispatch(
        self,
        request: NotificationRequest,
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """
        Deliver a notification unless a cooldown blocks it.

        Args:
            request: Escalation decision from the scheduler.
            now: Dispatch time, clock time by default.

        Returns:
            DispatchResult: What was done, with cooldown and delivery details.
        """
        now = now or self._clock.now()
        key = request.key

        if not request.level.is_actionable or not request.recipients:
            logger.debug(
                "notification_skipped",
                observed_person_id=request.observed_person_id,
                level=request.level.value,
                recipients=len(request.recipients),
            )
            return self._result(DispatchOutcome.SKIPPED, key)

        if request.level != AlertLevel.EMERGENCY and self.is_quiet_time(now):
            logger.info(
                "notification_deferred_quiet_hours",
                observed_person_id=request.observed_person_id,
                level=request.level.value,
            )
            return self._result(DispatchOutcome.DEFERRED, key)

        entry = self.cooldowns.get(key, now)
        if entry is None:
            # Written before delivery so a concurrent request sees it
            entry = self.cooldowns.acquire(key, now, self.settings.cooldown_for(request.level))
            recipients = list(request.recipients)
        elif entry.blocks:
            return self._cooldown(request, entry, now)
        else:
            recipients = [r for r in request.recipients if r not in entry.delivered_to]
            if not recipients:
                entry = self.cooldowns.settle(key, entry.delivered_to, complete=True) or entry
                return self._cooldown(request, entry, now)
            entry = self.cooldowns.resume(key) or entry
            logger.info(
                "notification_retrying_missed_recipients",
                observed_person_id=request.observed_person_id,
                level=request.level.value,
                already_delivered=len(entry.delivered_to),
                retrying=len(recipients),
            )

        title, body = self.render(request)
        metadata = {
            "observed_person_id": request.observed_person_id,
            "level": request.level.value,
            "elapsed_seconds": request.elapsed.total_seconds() if request.elapsed else None,
            "last_heartbeat_at": (
                request.last_heartbeat_at.isoformat() if request.last_heartbeat_at else None
            ),
        }

        delivered: List[str] = []
        failed: List[str] = []
        for recipient in recipients:
            if await self._deliver(recipient, title, body, request.level, metadata):
                delivered.append(recipient)
            else:
                failed.append(recipient)

        reached = list(entry.delivered_to) + delivered
        if failed:
            if reached:
                self.cooldowns.settle(key, reached, complete=False)
            else:
                self.cooldowns.release(key)
            logger.warning(
                "notification_delivery_failed",
                observed_person_id=request.observed_person_id,
                level=request.level.value,
                delivered=len(delivered),
                failed=len(failed),
            )
            return self._result(
                DispatchOutcome.FAILED, key, delivered_to=delivered, failed_for=failed
            )

        self.cooldowns.settle(key, reached, complete=True)
        self._history.append(
            NotificationRecord(
                observed_person_id=request.observed_person_id,
                level=request.level,
                recipients=delivered,
                title=title,
                body=body,
                sent_at=now,
            )
        )
        logger.info(
            "notification_sent",
            observed_person_id=request.observed_person_id,
            level=request.level.value,
            recipients=len(delivered),
        )
        return self._result(DispatchOutcome.SENT, key, delivered_to=delivered)

    async def _deliver(
        self,
        recipient: str,
        title: str,
        body: str,
        level: AlertLevel,
        metadata: Dict[str, Any],
    ) -> bool:
        """Send to one recipient. Any error or timeout counts as a failure."""
        try:
            ok = await asyncio.wait_for(
                self.notifier.send(recipient, title, body, level, metadata),
                timeout=self.settings.notify_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "notification_send_timeout",
                notifier=self.notifier.name,
                recipient=recipient,
                timeout_seconds=self.settings.notify_timeout_seconds,
            )
            return False
        except NotificationDeliveryFailure as e:
            logger.warning(
                "notification_send_rejected",
                notifier=self.notifier.name,
                recipient=recipient,
                error=str(e),
            )
            return False
        except Exception as e:
            logger.error(
                "notification_send_error",
                notifier=self.notifier.name,
                recipient=recipient,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        return bool(ok)

    # =========================================================================
    # HISTORY
    # =========================================================================

    def get_history(self, limit: int = 20) -> List[NotificationRecord]:
        """Most recent delivered notifications, newest first."""
        if limit <= 0:
            return []
        return list(self._history)[::-1][:limit]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "outcomes": {outcome.value: count for outcome, count in self._outcomes.items()},
            "active_cooldowns": len(self.cooldowns),
            "history_size": len(self._history),
        }
