"""Async rate gates for pacing calls to third-party geocoding services.

A gate enforces a minimum interval between successive acquisitions. The
first acquisition is immediate; later ones sleep until the interval since the
previous acquisition has elapsed. The clock and sleep functions are
injectable so pacing can be asserted without real waiting.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

SleepFunc = Callable[[float], Awaitable[None]]


class RateGate:
    """Minimum-interval gate shared by everything calling one service."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            msg = "min_interval must be >= 0"
            raise ValueError(msg)
        self.min_interval = float(min_interval)
        self._clock = clock
        self._sleep = sleep
        self._next_time: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait until a request may be made.

        Returns:
            Seconds spent waiting (0.0 when no wait was needed).
        """
        async with self._lock:
            now = self._clock()
            waited = 0.0
            if self._next_time is not None and self._next_time > now:
                waited = self._next_time - now
                await self._sleep(waited)
                now = self._clock()
            self._next_time = now + self.min_interval
            return waited


class NoOpRateGate(RateGate):
    """Gate that never waits (for tests or when pacing is disabled)."""

    def __init__(self) -> None:
        super().__init__(0.0)

    async def acquire(self) -> float:
        return 0.0
