"""
Clock -- injectable source of the current time.

Rate-limit decisions compare a stored ``reset_at`` against "now", and job
records carry ``created_at`` / ``last_activity_at`` stamps.  Both go
through a Clock so tests can stand at a fixed instant, or step past a
quota reset, without sleeping.

Kernel > Domain.  SystemClock is the only implementation that reads the
wall clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of timezone-aware UTC datetimes, passed in by constructor."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock that only moves when told to.

    Guarantees:
        - Repeated ``now()`` calls return the same instant.
        - ``advance(seconds)`` moves forward by exactly that much; ``tick()``
          is ``advance(1)`` returning the new time.
        - ``set_time()`` jumps to an instant and discards prior advances.
    """

    DEFAULT_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._base = fixed_time or self.DEFAULT_TIME
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._base + self._offset

    def set_time(self, time: datetime) -> None:
        self._base = time
        self._offset = timedelta(0)

    def advance(self, seconds: float = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_to(self, moment: datetime) -> None:
        """Move forward to ``moment`` (e.g. a rate-limit reset); never back."""
        if moment > self.now():
            self._offset += moment - self.now()

    def tick(self) -> datetime:
        self.advance(1)
        return self.now()
