"""Retry policy: backoff table lookup and dead-letter cutoff.

Example:
    >>> policy = RetryPolicy()
    >>> [policy.backoff(n).total_seconds() / 60 for n in range(6)]
    [0.0, 1.0, 5.0, 15.0, 30.0, 30.0]
    >>> policy.next_failure_status(4)
    <RecordStatus.DEAD: 'dead'>
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from cadence.core.models import Record, RecordStatus

if TYPE_CHECKING:
    from cadence.core.settings import CadenceSettings

DEFAULT_BACKOFF_MINUTES: tuple[float, ...] = (1, 5, 15, 30)
DEFAULT_MAX_ATTEMPTS = 4


@dataclass(frozen=True)
class RetryPolicy:
    """Maps ``processing_attempts`` to a retry delay and a terminal cutoff.

    Attributes:
        backoff_minutes: Delay for attempt 1, 2, ... ; lookups past the end
            saturate at the last entry.
        max_attempts: A failure that brings attempts to this value or
            beyond dead-letters the record.
    """

    backoff_minutes: tuple[float, ...] = DEFAULT_BACKOFF_MINUTES
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if not self.backoff_minutes:
            raise ValueError("backoff_minutes must not be empty")
        if any(step < 0 for step in self.backoff_minutes):
            raise ValueError("backoff_minutes entries must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_table(cls, minutes: Sequence[float], max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> RetryPolicy:
        return cls(backoff_minutes=tuple(float(m) for m in minutes), max_attempts=max_attempts)

    @classmethod
    def from_settings(cls, settings: CadenceSettings) -> RetryPolicy:
        return cls.from_table(settings.backoff_table_minutes, settings.max_attempts)

    def backoff(self, attempts: int) -> timedelta:
        """Minimum wait after a failure with *attempts* recorded.

        Zero attempts means nothing has failed yet, so there is no wait.
        """
        if attempts < 0:
            raise ValueError(f"attempts must be >= 0, got {attempts}")
        if attempts == 0:
            return timedelta(0)
        index = min(attempts, len(self.backoff_minutes)) - 1
        return timedelta(minutes=self.backoff_minutes[index])

    def next_delay(self, attempts: int) -> float:
        """Backoff in seconds."""
        return self.backoff(attempts).total_seconds()

    @property
    def retry_delays(self) -> tuple[timedelta, ...]:
        """The backoff table as durations, for store-side due filtering."""
        return tuple(timedelta(minutes=m) for m in self.backoff_minutes)

    def is_exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def next_failure_status(self, attempts_after_failure: int) -> RecordStatus:
        """Status for a record whose attempt count just became *attempts_after_failure*."""
        if self.is_exhausted(attempts_after_failure):
            return RecordStatus.DEAD
        return RecordStatus.FAILED

    def retry_at(self, record: Record) -> datetime | None:
        """Earliest time a failed record may be re-claimed."""
        if record.status != RecordStatus.FAILED or record.processed_at is None:
            return None
        return record.processed_at + self.backoff(record.processing_attempts)

    def is_retry_due(self, record: Record, now: datetime) -> bool:
        due_at = self.retry_at(record)
        return due_at is not None and now >= due_at


__all__ = ["RetryPolicy", "DEFAULT_BACKOFF_MINUTES", "DEFAULT_MAX_ATTEMPTS"]
