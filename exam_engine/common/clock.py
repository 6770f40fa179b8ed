"""
Clock abstraction.

Every timestamp the engine reads or writes is a naive datetime in UTC, so
values coming back from storage backends that drop tzinfo compare cleanly.
"""

import datetime
from abc import ABC, abstractmethod
from typing import Optional


def to_utc_naive(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime.datetime:
        pass


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, current: datetime.datetime):
        self.current = to_utc_naive(current)

    def now(self) -> datetime.datetime:
        return self.current

    def set(self, value: datetime.datetime) -> None:
        self.current = to_utc_naive(value)

    def advance(self, **delta) -> datetime.datetime:
        """Move forward by ``datetime.timedelta(**delta)`` and return the new time."""
        self.current = self.current + datetime.timedelta(**delta)
        return self.current


def utc_now() -> datetime.datetime:
    """Current time as naive UTC."""
    return SystemClock().now()
