"""Sliding-window rate limiter tests."""

from datetime import timedelta

import pytest

from presence_guard.security.rate_limiter import SlidingWindowRateLimiter

from conftest import START


def test_eleventh_and_twelfth_requests_within_window_are_rejected():
    """Ten requests in 40s pass, the next two are refused."""
    limiter = SlidingWindowRateLimiter(max_requests=10, window_seconds=60)
    results = [limiter.hit("u1", START + timedelta(seconds=4 * i))[0] for i in range(10)]
    assert all(results)

    allowed, retry_after = limiter.hit("u1", START + timedelta(seconds=40))
    assert allowed is False
    assert retry_after == pytest.approx(20.0)
    assert limiter.hit("u1", START + timedelta(seconds=40))[0] is False


def test_window_slides():
    """Requests become available again as old ones leave the window."""
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
    assert limiter.hit("u1", START)[0]
    assert limiter.hit("u1", START + timedelta(seconds=30))[0]
    assert not limiter.hit("u1", START + timedelta(seconds=59))[0]
    assert limiter.hit("u1", START + timedelta(seconds=60))[0]


def test_rejected_requests_do_not_extend_lockout():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=10)
    assert limiter.hit("u1", START)[0]
    for second in range(1, 10):
        assert not limiter.hit("u1", START + timedelta(seconds=second))[0]
    assert limiter.hit("u1", START + timedelta(seconds=10))[0]


def test_keys_are_independent():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
    assert limiter.hit("u1", START)[0]
    assert limiter.hit("u2", START)[0]
    assert limiter.remaining("u1", START) == 0
    assert limiter.remaining("u3", START) == 1


def test_tracked_keys_are_bounded():
    """The least recently used key is evicted once the table is full."""
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, max_tracked_keys=2)
    limiter.hit("u1", START)
    limiter.hit("u2", START)
    limiter.hit("u3", START)
    assert len(limiter) == 2
    assert "u1" not in limiter.snapshot(START)


def test_expired_keys_are_purged():
    limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)
    limiter.hit("u1", START)
    limiter.hit("u2", START + timedelta(seconds=30))
    assert limiter.snapshot(START + timedelta(seconds=61)) == {"u2": 1}


def test_reset_forgets_history():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
    limiter.hit("u1", START)
    limiter.reset("u1")
    assert limiter.hit("u1", START)[0]


@pytest.mark.parametrize("kwargs", [{"max_requests": 0}, {"window_seconds": 0}])
def test_invalid_limits(kwargs):
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(**kwargs)
