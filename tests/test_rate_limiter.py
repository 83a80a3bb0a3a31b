"""
Tests for fixed-window rate limiting.
"""

import pytest

from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.services import RateLimiter

from .conftest import BrokenCache, FakeClock


@pytest.fixture
def wall_clock():
    return FakeClock(start=10_000.0)


@pytest.fixture
def limiter(cache, wall_clock):
    return RateLimiter(cache=cache, limit=2, window=60, clock=wall_clock)


def test_allows_up_to_limit(limiter):
    first = limiter.check("203.0.113.7")
    second = limiter.check("203.0.113.7")

    assert (first.remaining, second.remaining) == (1, 0)
    with pytest.raises(ArchiveError) as exc:
        limiter.check("203.0.113.7")
    assert exc.value.kind is ErrorKind.RATE_LIMITED
    assert exc.value.status_code == 429
    assert exc.value.details["retry_after"] == 21


def test_clients_are_counted_separately(limiter):
    limiter.check("a")
    limiter.check("a")
    assert limiter.check("b").allowed


def test_new_window_resets_budget(limiter, wall_clock):
    limiter.check("a")
    limiter.check("a")
    wall_clock.advance(20)
    assert limiter.check("a").remaining == 1


def test_fails_open_when_cache_is_down(wall_clock):
    limiter = RateLimiter(cache=BrokenCache(), limit=1, window=60, clock=wall_clock)
    assert limiter.check("a").allowed
    assert limiter.check("a").allowed
