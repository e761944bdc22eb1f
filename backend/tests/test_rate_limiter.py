"""Tests for the in-memory rate limiter."""

import pytest

from coliving_platform.infra.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


async def test_allows_up_to_limit(limiter):
    results = [await limiter.check("u1", "upload", 3, 60) for _ in range(4)]
    assert [allowed for allowed, _ in results] == [True, True, True, False]
    assert results[-1][1] == 1_060.0


async def test_window_resets(limiter, clock):
    for _ in range(2):
        await limiter.check("u1", "upload", 2, 60)
    assert (await limiter.check("u1", "upload", 2, 60))[0] is False

    clock.now += 61
    assert await limiter.check("u1", "upload", 2, 60) == (True, None)


async def test_keys_are_independent(limiter):
    assert (await limiter.check("u1", "upload", 1, 60))[0] is True
    assert (await limiter.check("u1", "upload", 1, 60))[0] is False
    assert (await limiter.check("u2", "upload", 1, 60))[0] is True
    assert (await limiter.check("u1", "export", 1, 60))[0] is True


async def test_cleanup_drops_expired(limiter, clock):
    await limiter.check("u1", "upload", 5, 10)
    await limiter.check("u2", "upload", 5, 100)
    clock.now += 50

    assert await limiter.cleanup() == 1
    assert len(limiter) == 1
