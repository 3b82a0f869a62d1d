"""
Clock -- injectable source of "now".

Runner, supervisor, control verbs and settlement services take a Clock and
never call ``datetime.now()`` themselves.  Guard windows, timeout ceilings
and heartbeat staleness are measured against it.

Architecture position:
    Kernel > Domain -- zero I/O except SystemClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime: ...

    def seconds_since(self, moment: datetime | None) -> float | None:
        """Elapsed seconds since ``moment``; naive moments are read as UTC."""
        if moment is None:
            return None
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return (self.now() - moment).total_seconds()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time stands still until ``advance`` or ``set_time``.  Tests pass a
    sleeper that calls ``advance`` so backoff delays move time instead of
    blocking.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_EPOCH

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float = 1) -> None:
        self._current = self._current + timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        self.advance(1)
        return self._current
