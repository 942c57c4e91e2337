"""Unit tests for the async rate gate."""

import pytest

from map_ingest.core.rate_limit import NoOpRateGate, RateGate


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateGate:
    """Tests for RateGate pacing."""

    def setup_method(self) -> None:
        self.clock = FakeClock()

    async def test_first_acquire_is_immediate(self) -> None:
        gate = RateGate(1.0, clock=self.clock, sleep=self.clock.sleep)
        assert await gate.acquire() == 0.0
        assert self.clock.sleeps == []

    async def test_back_to_back_acquires_are_spaced(self) -> None:
        gate = RateGate(1.0, clock=self.clock, sleep=self.clock.sleep)
        await gate.acquire()
        waited = await gate.acquire()
        assert waited == pytest.approx(1.0)
        await gate.acquire()
        assert self.clock.sleeps == [pytest.approx(1.0), pytest.approx(1.0)]

    async def test_no_wait_after_interval_elapsed(self) -> None:
        gate = RateGate(0.3, clock=self.clock, sleep=self.clock.sleep)
        await gate.acquire()
        self.clock.now += 0.5
        assert await gate.acquire() == 0.0
        assert self.clock.sleeps == []

    async def test_partial_wait(self) -> None:
        gate = RateGate(1.0, clock=self.clock, sleep=self.clock.sleep)
        await gate.acquire()
        self.clock.now += 0.25
        assert await gate.acquire() == pytest.approx(0.75)

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError, match="min_interval"):
            RateGate(-1)


class TestNoOpRateGate:
    async def test_never_waits(self) -> None:
        gate = NoOpRateGate()
        for _ in range(3):
            assert await gate.acquire() == 0.0
