"""
Shared fixtures: a controllable clock and an isolated CacheManager.
"""
import random

import pytest

from app.cache import CacheManager


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    """Manager with promotion disabled so hit/set counters are exact."""
    return CacheManager(
        promotion_probability=0.0,
        rng=random.Random(1234),
        timer=clock,
    )
