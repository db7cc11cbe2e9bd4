"""Notification dispatcher tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from presence_guard.config.models import DispatcherSettings, QuietHoursConfig
from presence_guard.detection.dispatcher import NotificationDispatcher
from presence_guard.exceptions import NotificationDeliveryFailure
from presence_guard.models.notifications import CooldownKey, DispatchOutcome, NotificationRequest
from presence_guard.models.presence import AlertLevel


def request(clock, level=AlertLevel.WARNING, recipients=("observer-1",), person="user-1"):
    return NotificationRequest(
        observed_person_id=person,
        observed_name="Mom",
        level=level,
        recipients=list(recipients),
        elapsed=timedelta(hours=25),
        requested_at=clock.now(),
    )


@pytest.fixture
def dispatcher(notifier, clock):
    return NotificationDispatcher(notifier=notifier, clock=clock)


@pytest.mark.asyncio
async def test_first_request_is_sent(dispatcher, notifier, clock):
    result = await dispatcher.dispatch(request(clock))
    assert result.was_sent
    assert result.delivered_to == ["observer-1"]
    assert notifier.sent[0]["title"] == "Check on Mom"
    assert "1 day 1 hour" in notifier.sent[0]["body"]


@pytest.mark.asyncio
async def test_second_request_within_cooldown_is_blocked(dispatcher, notifier, clock):
    """A repeat after 120s is blocked with about 180s left."""
    await dispatcher.dispatch(request(clock))
    clock.advance(seconds=120)

    result = await dispatcher.dispatch(request(clock))
    assert result.outcome == DispatchOutcome.COOLDOWN
    assert result.remaining_seconds == pytest.approx(180.0)
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_request_after_cooldown_is_sent_again(dispatcher, notifier, clock):
    await dispatcher.dispatch(request(clock))
    clock.advance(seconds=300)
    assert (await dispatcher.dispatch(request(clock))).was_sent
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_cooldown_is_per_person_and_level(dispatcher, notifier, clock):
    """A new level or another person is not blocked by an existing entry."""
    await dispatcher.dispatch(request(clock))
    assert (await dispatcher.dispatch(request(clock, level=AlertLevel.DANGER))).was_sent
    assert (await dispatcher.dispatch(request(clock, person="user-2"))).was_sent
    assert len(notifier.sent) == 3


@pytest.mark.asyncio
async def test_failed_delivery_releases_cooldown(dispatcher, notifier, clock):
    """Nobody reached means the next request retries immediately."""
    notifier.fail_for.add("observer-1")
    result = await dispatcher.dispatch(request(clock))

    assert result.outcome == DispatchOutcome.FAILED
    assert len(dispatcher.cooldowns) == 0
    assert dispatcher.can_send(CooldownKey("user-1", AlertLevel.WARNING), clock.now()) == (True, 0.0)

    notifier.fail_for.clear()
    assert (await dispatcher.dispatch(request(clock))).was_sent


@pytest.mark.asyncio
async def test_partial_failure_retries_only_missed_recipients(dispatcher, notifier, clock):
    notifier.fail_for.add("observer-2")
    recipients = ("observer-1", "observer-2")

    first = await dispatcher.dispatch(request(clock, recipients=recipients))
    assert first.outcome == DispatchOutcome.FAILED
    assert first.delivered_to == ["observer-1"]
    assert first.failed_for == ["observer-2"]
    assert dispatcher.can_send(CooldownKey("user-1", AlertLevel.WARNING), clock.now()) == (True, 0.0)

    for _ in range(2):
        clock.advance(seconds=20)
        retry = await dispatcher.dispatch(request(clock, recipients=recipients))
        assert retry.outcome == DispatchOutcome.FAILED
        assert retry.delivered_to == []

    notifier.fail_for.clear()
    clock.advance(seconds=20)
    final = await dispatcher.dispatch(request(clock, recipients=recipients))
    assert final.was_sent
    assert final.delivered_to == ["observer-2"]

    targets = [sent["target_user_id"] for sent in notifier.sent]
    assert targets == ["observer-1", "observer-2"]

    blocked = await dispatcher.dispatch(request(clock, recipients=recipients))
    assert blocked.outcome == DispatchOutcome.COOLDOWN
    assert blocked.remaining_seconds == pytest.approx(240.0)


@pytest.mark.asyncio
async def test_partial_entry_closes_when_missed_recipient_leaves(dispatcher, notifier, clock):
    notifier.fail_for.add("observer-2")
    await dispatcher.dispatch(request(clock, recipients=("observer-1", "observer-2")))

    result = await dispatcher.dispatch(request(clock, recipients=("observer-1",)))
    assert result.outcome == DispatchOutcome.COOLDOWN
    assert len(notifier.sent) == 1


def test_body_without_known_silence(clock):
    title, body = NotificationDispatcher.render(
        NotificationRequest(
            observed_person_id="user-1",
            observed_name="Mom",
            level=AlertLevel.DANGER,
            recipients=["observer-1"],
            requested_at=clock.now(),
        )
    )
    assert title == "Mom may need help"
    assert body == "Mom has no recorded activity. Please contact them now."


@pytest.mark.asyncio
async def test_notifier_exception_counts_as_failure(dispatcher, notifier, clock):
    notifier.raise_for.add("observer-1")
    result = await dispatcher.dispatch(request(clock))
    assert result.outcome == DispatchOutcome.FAILED


@pytest.mark.asyncio
async def test_delivery_failure_exception_counts_as_failure(clock):
    class RejectingNotifier:
        name = "rejecting"

        async def send(self, *args, **kwargs):
            raise NotificationDeliveryFailure("410 gone")

    dispatcher = NotificationDispatcher(notifier=RejectingNotifier(), clock=clock)
    assert (await dispatcher.dispatch(request(clock))).outcome == DispatchOutcome.FAILED


@pytest.mark.asyncio
async def test_slow_notifier_times_out(clock):
    class SlowNotifier:
        name = "slow"

        async def send(self, *args, **kwargs):
            await asyncio.sleep(5)
            return True

    dispatcher = NotificationDispatcher(
        notifier=SlowNotifier(),
        settings=DispatcherSettings(notify_timeout_seconds=0.05),
        clock=clock,
    )
    result = await dispatcher.dispatch(request(clock))
    assert result.outcome == DispatchOutcome.FAILED
    assert len(dispatcher.cooldowns) == 0


@pytest.mark.asyncio
async def test_concurrent_requests_send_once(notifier, clock):
    """The cooldown entry is written before delivery starts."""
    gate = asyncio.Event()

    class GatedNotifier:
        name = "gated"

        def __init__(self):
            self.calls = 0

        async def send(self, *args, **kwargs):
            self.calls += 1
            await gate.wait()
            return True

    gated = GatedNotifier()
    dispatcher = NotificationDispatcher(notifier=gated, clock=clock)

    first = asyncio.create_task(dispatcher.dispatch(request(clock)))
    await asyncio.sleep(0)
    second = await dispatcher.dispatch(request(clock))
    gate.set()

    assert (await first).was_sent
    assert second.outcome == DispatchOutcome.COOLDOWN
    assert gated.calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("level", [AlertLevel.NORMAL, AlertLevel.UNKNOWN])
async def test_non_actionable_levels_are_skipped(dispatcher, notifier, clock, level):
    result = await dispatcher.dispatch(request(clock, level=level))
    assert result.outcome == DispatchOutcome.SKIPPED
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_no_recipients_is_skipped(dispatcher, clock):
    assert (await dispatcher.dispatch(request(clock, recipients=()))).outcome == DispatchOutcome.SKIPPED


@pytest.mark.asyncio
async def test_level_cooldown_override(notifier, clock):
    settings = DispatcherSettings(level_cooldown_seconds={AlertLevel.EMERGENCY: 60})
    dispatcher = NotificationDispatcher(notifier=notifier, settings=settings, clock=clock)

    await dispatcher.dispatch(request(clock, level=AlertLevel.EMERGENCY))
    clock.advance(seconds=61)
    assert (await dispatcher.dispatch(request(clock, level=AlertLevel.EMERGENCY))).was_sent


@pytest.mark.asyncio
async def test_quiet_hours_defer_all_but_emergency(notifier):
    from conftest import FrozenClock

    clock = FrozenClock(datetime(2024, 3, 4, 23, 30, tzinfo=timezone.utc))
    settings = DispatcherSettings(quiet_hours=QuietHoursConfig(enabled=True, start_hour=22, end_hour=8))
    dispatcher = NotificationDispatcher(notifier=notifier, settings=settings, clock=clock)

    deferred = await dispatcher.dispatch(request(clock, level=AlertLevel.DANGER))
    assert deferred.outcome == DispatchOutcome.DEFERRED
    assert len(dispatcher.cooldowns) == 0

    assert (await dispatcher.dispatch(request(clock, level=AlertLevel.EMERGENCY))).was_sent

    clock.set(datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc))
    assert (await dispatcher.dispatch(request(clock, level=AlertLevel.DANGER))).was_sent


@pytest.mark.asyncio
async def test_reset_cooldown(dispatcher, clock):
    await dispatcher.dispatch(request(clock))
    await dispatcher.dispatch(request(clock, level=AlertLevel.DANGER))
    assert dispatcher.reset_cooldown("user-1") == 2
    assert dispatcher.cooldown_status() == {}


@pytest.mark.asyncio
async def test_history_and_stats(dispatcher, clock):
    await dispatcher.dispatch(request(clock))
    await dispatcher.dispatch(request(clock))

    history = dispatcher.get_history()
    assert len(history) == 1
    assert history[0].level == AlertLevel.WARNING

    outcomes = dispatcher.get_stats()["outcomes"]
    assert outcomes["sent"] == 1
    assert outcomes["cooldown"] == 1
