"""Injectable time sources for window and expiry computations."""

import asyncio
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Abstract time source."""

    @abstractmethod
    def now(self) -> float:
        """Current time as epoch seconds."""
        ...

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for the given number of seconds."""
        ...


class SystemClock(Clock):
    """Wall clock backed by time.time() and asyncio.sleep()."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ManualClock(Clock):
    """
    Deterministic clock for tests and simulations.

    Time only moves through advance(), set() or sleep(). Sleeping
    advances virtual time instantly and records the requested delay.
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = float(start)
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move time forward and return the new timestamp."""
        self._now += seconds
        return self._now

    def set(self, timestamp: float) -> None:
        self._now = float(timestamp)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += max(0.0, seconds)
        # Yield so concurrent tasks interleave as they would on a real sleep
        await asyncio.sleep(0)
