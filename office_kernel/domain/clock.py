"""
Clock -- injectable time source.

Responsibility:
    Lets services that expire cached state (the Entity settings cache) be
    driven by a controllable clock in tests instead of calling ``time``
    or ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``monotonic()`` returns seconds that never decrease; only
          differences between two readings are meaningful.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Get a monotonic reading in seconds."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time sources."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - Readings do not move until ``advance()`` or ``set_time()`` is called.
        - ``monotonic()`` is the number of seconds advanced so far.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._elapsed = 0.0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    def set_time(self, when: datetime) -> None:
        """Move wall-clock time; the monotonic reading is unaffected."""
        self._fixed_time = when - timedelta(seconds=self._elapsed)

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        if seconds < 0:
            raise ValueError("DeterministicClock cannot move backwards")
        self._elapsed += seconds
