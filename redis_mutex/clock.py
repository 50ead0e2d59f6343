"""
Redis Mutex - Clock Interface

Abstraction for time operations so expiry arithmetic and polling can be
tested without real sleeps.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional


class Clock(ABC):
    """Abstract clock interface for testable time operations."""

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp (wall clock, shared across hosts)."""
        pass

    @abstractmethod
    def monotonic(self) -> float:
        """Get a monotonic reading for measuring elapsed time locally."""
        pass

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Sleep for the given duration."""
        pass


class SystemClock(Clock):
    """Real system clock implementation."""

    def timestamp(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FakeClock(Clock):
    """
    Fake clock for testing.

    Allows manual time advancement without actual sleeping. advance() and
    sleep() move both readings; set() moves only the wall clock, so the
    monotonic reading never runs backwards.
    """

    def __init__(self, start: Optional[float] = None):
        """
        Initialize fake clock.

        Args:
            start: Initial Unix timestamp (defaults to now)
        """
        self._current = time.time() if start is None else float(start)
        self._monotonic = 0.0
        self._sleep_calls: list[float] = []

    def timestamp(self) -> float:
        return self._current

    def monotonic(self) -> float:
        return self._monotonic

    async def sleep(self, seconds: float) -> None:
        """Record sleep call and advance time."""
        self._sleep_calls.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        """Advance the clock by the given seconds."""
        self._current += seconds
        self._monotonic += seconds

    def set(self, timestamp: float) -> None:
        """Set the clock to a specific Unix timestamp."""
        self._current = float(timestamp)

    @property
    def sleep_calls(self) -> list[float]:
        """Get list of sleep durations that were called."""
        return self._sleep_calls.copy()

    def clear_sleep_calls(self) -> None:
        """Clear recorded sleep calls."""
        self._sleep_calls.clear()


_default_clock = SystemClock()


def get_clock() -> Clock:
    """Get the process-wide system clock."""
    return _default_clock
