"""Heartbeat ingestion tests."""

import asyncio
from datetime import timedelta

import pytest

from presence_guard.exceptions import StoreUnavailable
from presence_guard.heartbeat.emitter import HeartbeatEmitter
from presence_guard.heartbeat.ingest import HeartbeatIngestor
from presence_guard.interfaces.presence_store import HEARTBEATS, SECURITY_LOGS
from presence_guard.models.heartbeat import HeartbeatRecord, MotionEvent
from presence_guard.security.validator import AntiSpoofingValidator


def payload(clock, **overrides):
    data = {
        "owner_id": "user-1",
        "timestamp": clock.now().isoformat(),
        "motion_count": 4,
    }
    data.update(overrides)
    return data


@pytest.fixture
def ingestor(store, clock):
    return HeartbeatIngestor(AntiSpoofingValidator(store=store, clock=clock), store)


@pytest.mark.asyncio
async def test_valid_heartbeat_is_stored(ingestor, store, clock):
    assert await ingestor.submit(payload(clock))
    latest = await store.get_latest(HEARTBEATS, "user-1")
    assert latest["motion_count"] == 4
    assert ingestor.get_stats() == {"accepted": 1, "rejected": {}}


@pytest.mark.asyncio
async def test_negative_motion_count_is_not_stored(ingestor, store, clock):
    assert not await ingestor.submit(payload(clock, motion_count=-5))
    assert store.count(HEARTBEATS) == 0
    assert store.count(SECURITY_LOGS, "user-1") == 1
    assert ingestor.get_stats()["rejected"] == {"ValidationError": 1}


@pytest.mark.asyncio
async def test_drifted_heartbeat_is_not_stored(ingestor, store, clock):
    stale = (clock.now() - timedelta(minutes=2)).isoformat()
    assert not await ingestor.submit(payload(clock, timestamp=stale))
    assert store.count(HEARTBEATS) == 0


@pytest.mark.asyncio
async def test_rate_limited_heartbeats_are_not_stored(ingestor, store, clock):
    results = [await ingestor.submit(payload(clock)) for _ in range(12)]
    assert results.count(True) == 10
    assert store.count(HEARTBEATS, "user-1") == 10


@pytest.mark.asyncio
async def test_store_failure_propagates(flaky_store, clock):
    ingestor = HeartbeatIngestor(AntiSpoofingValidator(clock=clock), flaky_store)
    flaky_store.fail_appends = True
    with pytest.raises(StoreUnavailable):
        await ingestor.submit(payload(clock))


@pytest.mark.asyncio
async def test_slow_append_times_out(store, clock):
    class SlowStore(type(store)):
        async def append(self, collection, record):
            await asyncio.sleep(5)

    ingestor = HeartbeatIngestor(
        AntiSpoofingValidator(clock=clock),
        SlowStore(),
        store_timeout_seconds=0.05,
    )
    with pytest.raises(StoreUnavailable):
        await ingestor.submit(payload(clock))


@pytest.mark.asyncio
async def test_emitter_feeds_ingestor(ingestor, store, clock):
    emitter = HeartbeatEmitter(owner_id="user-1", sink=ingestor, clock=clock)
    assert await emitter.on_motion(MotionEvent())
    clock.advance(seconds=6)
    assert await emitter.send_now()
    assert store.count(HEARTBEATS, "user-1") == 2
    await emitter.stop()


@pytest.mark.asyncio
async def test_naive_iso_timestamp_is_stored_as_utc(ingestor, store, clock):
    """Payload times without an offset are read as UTC."""
    naive = clock.now().replace(tzinfo=None).isoformat()
    assert await ingestor.submit(payload(clock, timestamp=naive))

    latest = await store.get_latest(HEARTBEATS, "user-1")
    stored = HeartbeatRecord.model_validate(latest)
    assert stored.timestamp.tzinfo is not None
    assert stored.timestamp == clock.now()
