"""
Logical time sources.

Deadlines and timestamps are plain non-negative integers. Whatever produces
them only has to be monotonically non-decreasing.
"""
import abc
import time


class Clock(abc.ABC):
    """A source of logical time."""

    @abc.abstractmethod
    def now(self) -> int:
        """Return the current logical time."""
        pass


class LogicalClock(Clock):
    """A manually driven counter, used by tests and embedders that own time."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("logical time cannot be negative")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, ticks: int = 1) -> int:
        if ticks < 0:
            raise ValueError("logical time cannot move backwards")
        self._now += ticks
        return self._now

    def set(self, value: int) -> int:
        if value < self._now:
            raise ValueError(f"logical time cannot move backwards ({self._now} -> {value})")
        self._now = value
        return self._now


class SystemClock(Clock):
    """Whole Unix seconds from the wall clock."""

    def now(self) -> int:
        return int(time.time())
