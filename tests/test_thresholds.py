"""Threshold config and provider tests."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from presence_guard.config.models import DEFAULT_THRESHOLDS, ThresholdConfig
from presence_guard.config.thresholds import ThresholdConfigProvider
from presence_guard.exceptions import StoreUnavailable
from presence_guard.interfaces.threshold_source import StaticThresholdSource, ThresholdSource


class BrokenSource(ThresholdSource):
    def __init__(self) -> None:
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        raise StoreUnavailable("settings unreachable")


def test_defaults_are_24_48_72_hours():
    """Reference thresholds."""
    assert DEFAULT_THRESHOLDS.warning_duration == timedelta(hours=24)
    assert DEFAULT_THRESHOLDS.danger_duration == timedelta(hours=48)
    assert DEFAULT_THRESHOLDS.emergency_duration == timedelta(hours=72)


@pytest.mark.parametrize(
    "hours",
    [
        (0, 48, 72),
        (-1, 48, 72),
        (48, 24, 72),
        (24, 24, 72),
        (24, 72, 72),
        (24, 80, 72),
    ],
)
def test_out_of_order_thresholds_cannot_be_constructed(hours):
    """0 < warning < danger < emergency is enforced on construction."""
    with pytest.raises(ValidationError):
        ThresholdConfig.from_hours(*hours)


def test_from_mapping_accepts_duration_keys():
    """Durations may be given in seconds."""
    config = ThresholdConfig.from_mapping(
        {"warning_duration": 3600, "danger_duration": 7200, "emergency_duration": 10800}
    )
    assert config.danger_duration == timedelta(hours=2)


def test_update_rejects_invalid_mapping_and_keeps_previous():
    """An invalid candidate never replaces the active config."""
    provider = ThresholdConfigProvider()
    assert provider.update({"warning_hours": 50, "danger_hours": 48, "emergency_hours": 72}) is False
    assert provider.current == DEFAULT_THRESHOLDS


def test_update_applies_valid_mapping():
    provider = ThresholdConfigProvider()
    assert provider.update({"warning_hours": 12, "danger_hours": 24, "emergency_hours": 36}) is True
    assert provider.current.warning_duration == timedelta(hours=12)


@pytest.mark.asyncio
async def test_provider_without_source_serves_defaults(clock):
    provider = ThresholdConfigProvider(clock=clock)
    assert await provider.get_thresholds() == DEFAULT_THRESHOLDS


@pytest.mark.asyncio
async def test_provider_caches_fetched_config(clock):
    """A fetched config is reused until the cache expires."""
    source = StaticThresholdSource({"warning_hours": 1, "danger_hours": 2, "emergency_hours": 3})
    provider = ThresholdConfigProvider(source=source, cache_seconds=300, clock=clock)

    first = await provider.get_thresholds()
    assert first.warning_duration == timedelta(hours=1)

    source.set({"warning_hours": 5, "danger_hours": 6, "emergency_hours": 7})
    clock.advance(seconds=299)
    assert await provider.get_thresholds() == first

    clock.advance(seconds=2)
    refreshed = await provider.get_thresholds()
    assert refreshed.warning_duration == timedelta(hours=5)


@pytest.mark.asyncio
async def test_invalidate_forces_refetch(clock):
    source = StaticThresholdSource({"warning_hours": 1, "danger_hours": 2, "emergency_hours": 3})
    provider = ThresholdConfigProvider(source=source, clock=clock)
    await provider.get_thresholds()

    source.set({"warning_hours": 10, "danger_hours": 20, "emergency_hours": 30})
    provider.invalidate()
    assert (await provider.get_thresholds()).warning_duration == timedelta(hours=10)


@pytest.mark.asyncio
async def test_invalid_remote_config_keeps_previous(clock):
    """A bad settings document is rejected and the last valid config stays active."""
    source = StaticThresholdSource({"warning_hours": 1, "danger_hours": 2, "emergency_hours": 3})
    provider = ThresholdConfigProvider(source=source, cache_seconds=0, clock=clock)
    good = await provider.get_thresholds()

    source.set({"warning_hours": 9, "danger_hours": 2, "emergency_hours": 3})
    assert await provider.get_thresholds() == good


@pytest.mark.asyncio
async def test_fetch_failure_serves_current_config(clock):
    """A source outage never leaves the scheduler without thresholds."""
    source = BrokenSource()
    provider = ThresholdConfigProvider(source=source, cache_seconds=60, clock=clock)

    assert await provider.get_thresholds() == DEFAULT_THRESHOLDS
    assert await provider.get_thresholds() == DEFAULT_THRESHOLDS
    assert source.calls == 1

    clock.advance(seconds=61)
    await provider.get_thresholds()
    assert source.calls == 2


def test_update_rejects_hours_too_large_for_a_duration():
    provider = ThresholdConfigProvider()
    assert provider.update({"warning_hours": 1e20, "danger_hours": 2e20, "emergency_hours": 3e20}) is False
    assert provider.current == DEFAULT_THRESHOLDS


@pytest.mark.asyncio
async def test_oversized_remote_config_keeps_defaults(clock):
    """Hour values that overflow a duration are rejected like any other bad document."""
    source = StaticThresholdSource(
        {"warning_hours": 1e20, "danger_hours": 2e20, "emergency_hours": 3e20}
    )
    provider = ThresholdConfigProvider(source=source, cache_seconds=300, clock=clock)

    assert await provider.get_thresholds() == DEFAULT_THRESHOLDS
