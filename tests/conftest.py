"""Shared fixtures: a fake clock and a controller driven by it."""

import pytest

from meter_core import AcceleratingValueController, CooperativeScheduler


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return CooperativeScheduler(clock)


@pytest.fixture
def controller(scheduler):
    return AcceleratingValueController(scheduler, min_value=0, max_value=1, precision=0.01)


@pytest.fixture
def pause(clock, scheduler):
    """Let the acceleration reset fire, as if the user paused."""
    def _pause(seconds: float = 0.2):
        clock.advance(seconds)
        scheduler.run_pending()
    return _pause
