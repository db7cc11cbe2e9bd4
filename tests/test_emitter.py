"""Heartbeat emitter tests."""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio

from presence_guard.config.models import HeartbeatSettings
from presence_guard.heartbeat.emitter import HeartbeatEmitter
from presence_guard.models.heartbeat import MotionEvent, SensorSource


class CollectingSink:
    def __init__(self, accept=True):
        self.records = []
        self.accept = accept
        self.error = None

    async def submit(self, payload):
        if self.error is not None:
            raise self.error
        self.records.append(payload)
        return self.accept


@pytest.fixture
def sink():
    return CollectingSink()


@pytest_asyncio.fixture
async def emitter(sink, clock):
    emitter = HeartbeatEmitter(owner_id="user-1", sink=sink, clock=clock)
    yield emitter
    await emitter.stop()


@pytest.mark.asyncio
async def test_motion_emits_heartbeat(emitter, sink, clock):
    assert await emitter.on_motion(MotionEvent(intensity=2.0))
    record = sink.records[0]
    assert record.owner_id == "user-1"
    assert record.motion_count == 1
    assert record.source_sensor == SensorSource.MOTION
    assert record.timestamp == clock.now()


@pytest.mark.asyncio
async def test_motion_within_cooldown_is_ignored(emitter, sink, clock):
    assert await emitter.on_motion(MotionEvent())
    clock.advance(seconds=4)
    assert not await emitter.on_motion(MotionEvent())
    clock.advance(seconds=1)
    assert await emitter.on_motion(MotionEvent())
    assert len(sink.records) == 2


@pytest.mark.asyncio
async def test_hourly_cap(emitter, sink, clock):
    """At most ten motions per wall-clock hour, then the counter resets."""
    clock.set(clock.now().replace(minute=0))
    accepted = 0
    for _ in range(15):
        accepted += await emitter.on_motion(MotionEvent())
        clock.advance(seconds=10)
    assert accepted == 10

    clock.set(clock.now().replace(minute=0) + timedelta(hours=1))
    assert await emitter.on_motion(MotionEvent())
    assert emitter.hourly_count == 1
    assert emitter.motion_count == 11


@pytest.mark.asyncio
async def test_daily_count_resets_at_midnight(emitter, clock):
    await emitter.on_motion(MotionEvent())
    clock.set(clock.now().replace(hour=0, minute=0) + timedelta(days=1))
    await emitter.on_motion(MotionEvent())
    assert emitter.motion_count == 1


@pytest.mark.asyncio
async def test_low_intensity_is_ignored(sink, clock):
    emitter = HeartbeatEmitter(
        owner_id="user-1",
        sink=sink,
        clock=clock,
        settings=HeartbeatSettings(min_intensity=0.5),
    )
    assert not await emitter.on_motion(MotionEvent(intensity=0.1))
    assert await emitter.on_motion(MotionEvent(intensity=0.6))
    await emitter.stop()


@pytest.mark.asyncio
async def test_touch_events_keep_their_source(emitter, sink):
    await emitter.on_motion(MotionEvent(sensor=SensorSource.TOUCH))
    assert sink.records[0].source_sensor == SensorSource.TOUCH


@pytest.mark.asyncio
async def test_paused_emitter_ignores_motion(emitter, sink):
    emitter.pause()
    assert not await emitter.on_motion(MotionEvent())
    emitter.resume()
    assert await emitter.on_motion(MotionEvent())
    assert len(sink.records) == 1


@pytest.mark.asyncio
async def test_send_now_bypasses_limits(emitter, sink):
    await emitter.on_motion(MotionEvent())
    assert await emitter.send_now()
    assert sink.records[-1].source_sensor == SensorSource.MANUAL
    assert sink.records[-1].motion_count == 1


@pytest.mark.asyncio
async def test_send_now_reports_activity_without_prior_motion(emitter, sink):
    await emitter.send_now()
    assert sink.records[0].motion_count == 1


@pytest.mark.asyncio
async def test_delivery_failure_drops_heartbeat(emitter, sink):
    """Undeliverable heartbeats are dropped, not queued."""
    sink.error = ConnectionError("offline")
    assert not await emitter.send_now()
    sink.error = None
    sink.accept = False
    assert not await emitter.send_now()
    assert emitter.get_status()["dropped"] == 2
    assert emitter.get_status()["emitted"] == 0


@pytest.mark.asyncio
async def test_update_settings(emitter):
    settings = emitter.update_settings(max_motions_per_hour=20)
    assert settings.max_motions_per_hour == 20
    assert emitter.settings.motion_cooldown_seconds == 5.0


@pytest.mark.asyncio
async def test_periodic_loop_emits_immediately(sink, clock):
    emitter = HeartbeatEmitter(
        owner_id="user-1",
        sink=sink,
        clock=clock,
        settings=HeartbeatSettings(periodic_interval_seconds=3600),
    )
    await emitter.start()
    for _ in range(20):
        if sink.records:
            break
        await asyncio.sleep(0.01)
    await emitter.stop()

    assert sink.records[0].source_sensor == SensorSource.PERIODIC
    assert not emitter.is_running


@pytest.mark.asyncio
async def test_periodic_loop_skips_while_paused(sink, clock):
    emitter = HeartbeatEmitter(owner_id="user-1", sink=sink, clock=clock)
    emitter.pause()
    await emitter.start()
    await asyncio.sleep(0.02)
    await emitter.stop()
    assert sink.records == []


@pytest.mark.asyncio
async def test_first_accepted_motion_starts_periodic_emission(emitter, sink):
    assert not emitter.is_running
    assert await emitter.on_motion(MotionEvent())
    assert emitter.is_running

    await asyncio.sleep(0.02)
    assert [record.source_sensor for record in sink.records] == [SensorSource.MOTION]


@pytest.mark.asyncio
async def test_rejected_motion_does_not_start_periodic_emission(emitter):
    emitter.pause()
    assert not await emitter.on_motion(MotionEvent())
    assert not emitter.is_running


@pytest.mark.asyncio
async def test_stopped_emitter_is_not_restarted_by_motion(emitter, clock):
    await emitter.on_motion(MotionEvent())
    await emitter.stop()

    clock.advance(seconds=10)
    assert await emitter.on_motion(MotionEvent())
    assert not emitter.is_running

    await emitter.start()
    assert emitter.is_running
