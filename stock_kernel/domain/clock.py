"""
Clock -- the ledger's only source of "now".

Responsibility:
    ``recorded_at`` stamps, the default usage window and ``days until
    expiry`` all depend on the current time.  Services take a Clock through
    their constructor and hand plain ``date`` values to the engines, so a
    projection can be replayed with the same answer tomorrow.

Architecture position:
    Kernel > Domain.  SystemClock is the one place that reads the host
    clock; DeterministicClock drives the test suite.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Start of the test clock when none is given
DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """
    Injectable time source.

    Guarantees:
        - ``now_utc()`` is timezone-aware and in UTC.
        - ``today()`` is the UTC calendar date of ``now_utc()``; the ledger's
          recorded-at date basis uses the same rule.
    """

    @abstractmethod
    def now_utc(self) -> datetime:
        """Current UTC time."""

    def today(self) -> date:
        return self.now_utc().date()


class SystemClock(Clock):
    """Host wall clock."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Repeated ``now_utc()`` calls return the same instant until ``advance``,
    ``advance_days``, ``tick`` or ``set_time`` is called, so two appends
    without a tick share one ``recorded_at``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = self._as_utc(fixed_time or DEFAULT_TEST_TIME)

    @staticmethod
    def _as_utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError(f"DeterministicClock needs an aware datetime, got {value!r}")
        return value.astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = self._as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        """Move to the same wall time ``days`` later (negative moves back)."""
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Advance one second and return the new instant."""
        self.advance(1)
        return self._current
