"""
Record state machine.

::

    pending ──claim──► processing ──success──► completed
       ▲                  │  │
       │                  │  └──error, attempts <  cap──► failed ──backoff──┐
       │                  └─────error, attempts >= cap──► dead             │
       ├──────────────────────── sweeper reclaim (processing) ◄─┘           │
       └────────────────────────────────────────────────────────────────────┘

Every edge is applied by a store as ONE conditional update keyed on the
record id and the status the caller last observed. A zero-row update is
the normal signal of a lost race and is reported as ``False``.

:class:`RecordTransition` describes the update; the builder functions
below are the only way engine code creates one, which keeps the column
changes for each edge in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from cadence.core.errors import IllegalTransitionError
from cadence.core.models import RecordStatus

RECOVERED_MESSAGE = "recovered from stuck state"

TRANSITIONS: frozenset[tuple[RecordStatus, RecordStatus]] = frozenset(
    {
        (RecordStatus.PENDING, RecordStatus.PROCESSING),
        (RecordStatus.PROCESSING, RecordStatus.COMPLETED),
        (RecordStatus.PROCESSING, RecordStatus.FAILED),
        (RecordStatus.PROCESSING, RecordStatus.DEAD),
        (RecordStatus.FAILED, RecordStatus.PENDING),
        (RecordStatus.PROCESSING, RecordStatus.PENDING),
    }
)

TERMINAL_STATUSES = frozenset({RecordStatus.COMPLETED, RecordStatus.DEAD})


def is_legal(source: RecordStatus, target: RecordStatus) -> bool:
    return (RecordStatus(source), RecordStatus(target)) in TRANSITIONS


def ensure_legal(source: RecordStatus, target: RecordStatus) -> None:
    """Raise :class:`IllegalTransitionError` for an edge outside the machine."""
    if not is_legal(source, target):
        raise IllegalTransitionError(RecordStatus(source).value, RecordStatus(target).value)


@dataclass(frozen=True)
class RecordTransition:
    """A conditional record update.

    Attributes:
        source: Status the caller observed; the update only applies if the
            row still has it.
        target: New status.
        at: Timestamp written to ``status_changed_at``.
        expected_changed_at: When set, the row must also still carry this
            ``status_changed_at`` (sweeper compare-and-swap).
        workflow_id: Written on claim.
        touch_processed_at: Write ``at`` to ``processed_at``.
        error_message: Written when not None.
        clear_error: Reset ``error_message`` to NULL.
        increment_attempts: Add one to ``processing_attempts`` in the same update.
    """

    source: RecordStatus
    target: RecordStatus
    at: datetime
    expected_changed_at: datetime | None = None
    workflow_id: int | None = None
    touch_processed_at: bool = False
    error_message: str | None = None
    clear_error: bool = False
    increment_attempts: bool = False

    def __post_init__(self) -> None:
        ensure_legal(self.source, self.target)


def claim(workflow_id: int, at: datetime) -> RecordTransition:
    """pending → processing on behalf of *workflow_id*."""
    return RecordTransition(
        source=RecordStatus.PENDING,
        target=RecordStatus.PROCESSING,
        at=at,
        workflow_id=workflow_id,
        touch_processed_at=True,
    )


def complete(at: datetime) -> RecordTransition:
    """processing → completed."""
    return RecordTransition(
        source=RecordStatus.PROCESSING,
        target=RecordStatus.COMPLETED,
        at=at,
        touch_processed_at=True,
        clear_error=True,
    )


def fail(target: RecordStatus, message: str, at: datetime) -> RecordTransition:
    """processing → failed | dead, counting the attempt."""
    return RecordTransition(
        source=RecordStatus.PROCESSING,
        target=target,
        at=at,
        touch_processed_at=True,
        error_message=message,
        increment_attempts=True,
    )


def requeue(at: datetime) -> RecordTransition:
    """failed → pending once its backoff has elapsed."""
    return RecordTransition(source=RecordStatus.FAILED, target=RecordStatus.PENDING, at=at)


def recover(observed_changed_at: datetime | None, at: datetime) -> RecordTransition:
    """processing → pending for a stuck record, keyed on its stale timestamp."""
    return RecordTransition(
        source=RecordStatus.PROCESSING,
        target=RecordStatus.PENDING,
        at=at,
        expected_changed_at=observed_changed_at,
        error_message=RECOVERED_MESSAGE,
        increment_attempts=True,
    )


__all__ = [
    "TRANSITIONS",
    "TERMINAL_STATUSES",
    "RECOVERED_MESSAGE",
    "RecordTransition",
    "is_legal",
    "ensure_legal",
    "claim",
    "complete",
    "fail",
    "requeue",
    "recover",
]
