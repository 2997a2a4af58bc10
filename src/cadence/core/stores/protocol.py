"""Store protocols consumed by the engine.

Both stores are the only shared mutable state in the system. Every
mutation that takes part in a claim is a single-row conditional update
returning ``bool``: ``True`` means this caller won, ``False`` means the
row no longer matched (another actor got there first). Infrastructure
problems raise :class:`~cadence.core.errors.StoreError`.

Implementations:
    - InMemoryWorkflowStore / InMemoryRecordStore (``stores.memory``)
    - SQLWorkflowStore / SQLRecordStore (``stores.sql``)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from cadence.core.models import Record, RecordStatus, Workflow, WorkflowCreate
from cadence.core.state_machine import RecordTransition


@runtime_checkable
class WorkflowStore(Protocol):
    """Workflow definitions and their trigger state."""

    def create(self, spec: WorkflowCreate, now: datetime) -> Workflow:
        """Insert a workflow in ``initialized`` (or ``disabled`` if inactive)."""
        ...

    def get(self, workflow_id: int) -> Workflow | None:
        ...

    def list_all(self) -> list[Workflow]:
        """All workflows ordered by id."""
        ...

    def list_due(self, now: datetime) -> list[Workflow]:
        """Workflows for which :meth:`Workflow.is_due` holds, ordered by id."""
        ...

    def claim_run(self, workflow_id: int) -> bool:
        """Conditional ``idle|initialized → running`` on an active workflow."""
        ...

    def complete_run(self, workflow_id: int, finished_at: datetime) -> bool:
        """Conditional ``running → idle`` advancing ``last_execution_time``.

        ``last_execution_time`` never moves backwards.
        """
        ...

    def reset_run(self, workflow_id: int) -> bool:
        """Operator remediation: ``running → idle`` without touching
        ``last_execution_time``."""
        ...

    def set_active(self, workflow_id: int, active: bool) -> bool:
        """Toggle ``is_active``; returns False if the workflow does not exist."""
        ...


@runtime_checkable
class RecordStore(Protocol):
    """Ingested records and their processing state."""

    def insert(self, payload: dict[str, Any], now: datetime) -> int:
        """Ingestion write path: always creates a ``pending`` record."""
        ...

    def get(self, record_id: int) -> Record | None:
        ...

    def list(self, status: RecordStatus | None = None, limit: int = 100) -> list[Record]:
        """Records ordered by creation, optionally filtered by status."""
        ...

    def list_pending(self, created_since: datetime, limit: int) -> list[Record]:
        """``pending`` records created at/after *created_since*, oldest first."""
        ...

    def list_failed(
        self, created_since: datetime, now: datetime, retry_delays: Sequence[timedelta], limit: int
    ) -> list[Record]:
        """``failed`` records created at/after *created_since* whose backoff
        has elapsed at *now*, oldest failure first.

        ``retry_delays[i]`` is the wait after ``i + 1`` attempts; higher
        attempt counts use the last entry. The backoff filter is applied
        before *limit*.
        """
        ...

    def list_stuck(self, changed_before: datetime, limit: int) -> list[Record]:
        """``processing`` records whose ``status_changed_at`` is older than
        *changed_before*."""
        ...

    def transition(self, record_id: int, change: RecordTransition) -> bool:
        """Apply *change* atomically if the row still matches it."""
        ...

    def count_by_status(self) -> dict[str, int]:
        ...


def retry_delay_for(retry_delays: Sequence[timedelta], attempts: int) -> timedelta:
    """Wait owed by a failed record with *attempts* recorded."""
    if not retry_delays:
        raise ValueError("retry_delays must not be empty")
    if attempts <= 0:
        return timedelta(0)
    return retry_delays[min(attempts, len(retry_delays)) - 1]


__all__ = ["WorkflowStore", "RecordStore", "retry_delay_for"]
