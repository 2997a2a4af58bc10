"""
Clocks and UTC timestamp helpers.

Every time-dependent component (scanner, executor, sweeper, stores)
takes a :class:`Clock` so tests can drive the engine with a
:class:`ManualClock` instead of sleeping.

All timestamps inside cadence are timezone-aware UTC.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime.

    Naive datetimes are assumed to already be UTC (SQLite drops tzinfo).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@runtime_checkable
class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current aware UTC datetime."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return utc_now()


class ManualClock:
    """Virtual clock that only moves when told to.

    Example:
        >>> clock = ManualClock(datetime(2025, 1, 1, tzinfo=UTC))
        >>> clock.advance(seconds=15)
        >>> clock.now()
        datetime.datetime(2025, 1, 1, 0, 0, 15, tzinfo=datetime.timezone.utc)
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start else utc_now()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta | None = None, *, seconds: float = 0, minutes: float = 0) -> datetime:
        """Move the clock forward and return the new time."""
        step = delta or timedelta(seconds=seconds, minutes=minutes)
        if step < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now = self._now + step
            return self._now

    def set(self, value: datetime) -> None:
        """Jump to an absolute time (forward only)."""
        value = ensure_utc(value)
        with self._lock:
            if value < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = value


__all__ = ["Clock", "SystemClock", "ManualClock", "utc_now", "ensure_utc"]
