"""
Clock -- injectable time source.

Services never call ``datetime.now()`` themselves.  Lot arrival dates, lot
creation timestamps (the FIFO tie-break), audit change times and order
dates all come from the Clock handed to the service, so tests can pin or
script time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Iterable


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Every ``now()`` returns the same instant until ``advance()`` or
    ``set_time()`` moves it.  Defaults to 2024-01-01 12:00 UTC.
    """

    DEFAULT_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, when: datetime) -> None:
        self._current = when

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current


class SequentialClock(Clock):
    """
    Replays a scripted list of instants, one per ``now()`` call, then keeps
    returning the final one.  Useful for giving each lot in a test its own
    creation time without threading a clock through every builder.
    """

    def __init__(self, times: Iterable[datetime]):
        self._pending = list(times)
        if not self._pending:
            raise ValueError("SequentialClock needs at least one datetime")
        self._pending.reverse()

    def now(self) -> datetime:
        if len(self._pending) > 1:
            return self._pending.pop()
        return self._pending[0]
