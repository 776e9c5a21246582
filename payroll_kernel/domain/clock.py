"""
Clock -- injectable time source.

Responsibility:
    Lets services stamp history entries, approval records and calculation
    errors without calling ``datetime.now()`` directly, so batch lifecycles can
    be replayed deterministically in tests.

Architecture position:
    Kernel > Domain.  Zero I/O except ``SystemClock``.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the UTC calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock returning real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Contract:
        ``now()`` is stable until ``advance()``, ``tick()`` or ``set_time()``.
        With ``auto_tick`` every ``now()`` call first advances one second,
        which keeps append-only histories strictly ordered in tests.
    """

    def __init__(self, fixed_time: datetime | None = None, auto_tick: bool = False):
        self._fixed_time = fixed_time or datetime(2024, 7, 1, 9, 0, 0, tzinfo=timezone.utc)
        self._advance_seconds = 0
        self._auto_tick = auto_tick

    def now(self) -> datetime:
        if self._auto_tick:
            self._advance_seconds += 1
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self._fixed_time + timedelta(seconds=self._advance_seconds)
