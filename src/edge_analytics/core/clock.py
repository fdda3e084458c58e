"""Time sources for quote ageing and health timestamps.

WallClock   real UTC time
SimClock    manually advanced time for tests and trade replays

The pricing package never reads ``datetime.now()`` itself; it asks the
clock it was constructed with.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

_DEFAULT_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class IClock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime:
        ...


def seconds_since(clock: IClock, then: datetime) -> float:
    """Age of ``then`` according to ``clock``."""
    return (clock.now() - then).total_seconds()


class WallClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SimClock:
    """Clock that only moves when told to.

    Lets price-window and backoff behaviour be tested without sleeping.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or _DEFAULT_START

    def now(self) -> datetime:
        return self._now

    def set_time(self, t: datetime) -> None:
        if t < self._now:
            raise ValueError(f"SimClock cannot go backwards: {t} < {self._now}")
        self._now = t

    def advance(self, seconds: float) -> None:
        self.set_time(self._now + timedelta(seconds=seconds))
