"""
In-memory stores for tests and single-process deployments.

A ``threading.Lock`` around each store makes every conditional update
atomic across threads, which is the same guarantee a database gives a
single-row ``UPDATE ... WHERE status = :expected``. Reads return copies so
callers never observe a row changing under them.

``InMemoryRecordStore.history`` keeps every applied transition in order,
which lets tests check observed status histories against the state
machine.
"""

from __future__ import annotations

import copy
import itertools
import threading
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from cadence.core.models import (
    CLAIMABLE_WORKFLOW_STATUSES,
    Record,
    RecordStatus,
    Workflow,
    WorkflowCreate,
    WorkflowStatus,
)
from cadence.core.state_machine import RecordTransition
from cadence.core.stores.protocol import retry_delay_for

__all__ = ["InMemoryWorkflowStore", "InMemoryRecordStore", "AppliedTransition"]


class InMemoryWorkflowStore:
    """Dict-backed :class:`~cadence.core.stores.protocol.WorkflowStore`."""

    def __init__(self) -> None:
        self._rows: dict[int, Workflow] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create(self, spec: WorkflowCreate, now: datetime) -> Workflow:
        with self._lock:
            workflow = Workflow(
                id=next(self._ids),
                user_email=spec.user_email,
                interval_seconds=spec.interval_seconds,
                starting_time=spec.starting_time,
                current_status=WorkflowStatus.INITIALIZED if spec.is_active else WorkflowStatus.DISABLED,
                is_active=spec.is_active,
                created_at=now,
            )
            self._rows[workflow.id] = workflow
            return replace(workflow)

    def get(self, workflow_id: int) -> Workflow | None:
        with self._lock:
            row = self._rows.get(workflow_id)
            return replace(row) if row else None

    def list_all(self) -> list[Workflow]:
        with self._lock:
            return [replace(self._rows[k]) for k in sorted(self._rows)]

    def list_due(self, now: datetime) -> list[Workflow]:
        return [w for w in self.list_all() if w.is_due(now)]

    def claim_run(self, workflow_id: int) -> bool:
        with self._lock:
            row = self._rows.get(workflow_id)
            if row is None or not row.is_active or row.current_status not in CLAIMABLE_WORKFLOW_STATUSES:
                return False
            row.current_status = WorkflowStatus.RUNNING
            return True

    def complete_run(self, workflow_id: int, finished_at: datetime) -> bool:
        with self._lock:
            row = self._rows.get(workflow_id)
            if row is None or row.current_status != WorkflowStatus.RUNNING:
                return False
            if row.last_execution_time is None or finished_at > row.last_execution_time:
                row.last_execution_time = finished_at
            row.current_status = WorkflowStatus.IDLE if row.is_active else WorkflowStatus.DISABLED
            return True

    def reset_run(self, workflow_id: int) -> bool:
        with self._lock:
            row = self._rows.get(workflow_id)
            if row is None or row.current_status != WorkflowStatus.RUNNING:
                return False
            row.current_status = WorkflowStatus.IDLE if row.is_active else WorkflowStatus.DISABLED
            return True

    def set_active(self, workflow_id: int, active: bool) -> bool:
        with self._lock:
            row = self._rows.get(workflow_id)
            if row is None:
                return False
            row.is_active = active
            if not active and row.current_status in CLAIMABLE_WORKFLOW_STATUSES:
                row.current_status = WorkflowStatus.DISABLED
            elif active and row.current_status == WorkflowStatus.DISABLED:
                row.current_status = WorkflowStatus.IDLE
            return True


@dataclass(frozen=True)
class AppliedTransition:
    """One successful record transition, as recorded by the in-memory store."""

    record_id: int
    source: RecordStatus
    target: RecordStatus
    at: datetime


class InMemoryRecordStore:
    """Dict-backed :class:`~cadence.core.stores.protocol.RecordStore`."""

    def __init__(self) -> None:
        self._rows: dict[int, Record] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.history: list[AppliedTransition] = []

    def _copy(self, row: Record) -> Record:
        return replace(row, payload=copy.deepcopy(row.payload))

    def insert(self, payload: dict[str, Any], now: datetime) -> int:
        with self._lock:
            record_id = next(self._ids)
            self._rows[record_id] = Record(
                id=record_id,
                payload=copy.deepcopy(payload),
                status=RecordStatus.PENDING,
                status_changed_at=now,
                created_at=now,
            )
            return record_id

    def get(self, record_id: int) -> Record | None:
        with self._lock:
            row = self._rows.get(record_id)
            return self._copy(row) if row else None

    def list(self, status: RecordStatus | None = None, limit: int = 100) -> list[Record]:
        with self._lock:
            rows = [r for r in self._rows.values() if status is None or r.status == status]
            rows.sort(key=lambda r: (r.created_at, r.id))
            return [self._copy(r) for r in rows[:limit]]

    def list_pending(self, created_since: datetime, limit: int) -> list[Record]:
        with self._lock:
            rows = [
                r
                for r in self._rows.values()
                if r.status == RecordStatus.PENDING and r.created_at >= created_since
            ]
            rows.sort(key=lambda r: (r.created_at, r.id))
            return [self._copy(r) for r in rows[:limit]]

    def list_failed(
        self, created_since: datetime, now: datetime, retry_delays: Sequence[timedelta], limit: int
    ) -> list[Record]:
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        with self._lock:
            rows = [
                r
                for r in self._rows.values()
                if r.status == RecordStatus.FAILED
                and r.created_at >= created_since
                and r.processed_at is not None
                and r.processed_at + retry_delay_for(retry_delays, r.processing_attempts) <= now
            ]
            rows.sort(key=lambda r: (r.processed_at, r.id))
            return [self._copy(r) for r in rows[:limit]]

    def list_stuck(self, changed_before: datetime, limit: int) -> list[Record]:
        with self._lock:
            rows = [
                r
                for r in self._rows.values()
                if r.status == RecordStatus.PROCESSING
                and r.status_changed_at is not None
                and r.status_changed_at < changed_before
            ]
            rows.sort(key=lambda r: (r.status_changed_at, r.id))
            return [self._copy(r) for r in rows[:limit]]

    def transition(self, record_id: int, change: RecordTransition) -> bool:
        with self._lock:
            row = self._rows.get(record_id)
            if row is None or row.status != change.source:
                return False
            if change.expected_changed_at is not None and row.status_changed_at != change.expected_changed_at:
                return False

            row.status = change.target
            row.status_changed_at = change.at
            if change.workflow_id is not None:
                row.workflow_id = change.workflow_id
            if change.touch_processed_at:
                row.processed_at = change.at
            if change.clear_error:
                row.error_message = None
            if change.error_message is not None:
                row.error_message = change.error_message
            if change.increment_attempts:
                row.processing_attempts += 1

            self.history.append(AppliedTransition(record_id, change.source, change.target, change.at))
            return True

    def count_by_status(self) -> dict[str, int]:
        with self._lock:
            counts = {status.value: 0 for status in RecordStatus}
            for row in self._rows.values():
                counts[row.status.value] += 1
            return counts

    def statuses_of(self, record_id: int) -> list[RecordStatus]:
        """Observed status history of one record, starting from ``pending``."""
        with self._lock:
            path = [RecordStatus.PENDING]
            path.extend(t.target for t in self.history if t.record_id == record_id)
            return path
