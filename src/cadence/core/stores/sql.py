"""
SQLAlchemy-backed stores (SQLite, PostgreSQL).

Each claim is a single ``UPDATE ... WHERE id = :id AND status = :expected``
in its own short transaction; the affected row count decides the winner.
No statement here spans more than one row's state, so there is nothing to
roll back across records or workflows.

Any ``SQLAlchemyError`` is re-raised as
:class:`~cadence.core.errors.StoreUnavailableError` with the original
chained as cause.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, case, func, insert, literal, or_, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from cadence.core.errors import StoreUnavailableError
from cadence.core.logging import get_logger
from cadence.core.models import (
    CLAIMABLE_WORKFLOW_STATUSES,
    Record,
    RecordStatus,
    Workflow,
    WorkflowCreate,
    WorkflowStatus,
)
from cadence.core.orm.base import UTCDateTime
from cadence.core.orm.tables import RecordTable, WorkflowTable
from cadence.core.state_machine import RecordTransition

logger = get_logger(__name__)

__all__ = ["SQLWorkflowStore", "SQLRecordStore"]

_CLAIMABLE = [s.value for s in CLAIMABLE_WORKFLOW_STATUSES]


class _SQLStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def _begin(self, operation: str) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise StoreUnavailableError(f"{operation} failed: {e}", cause=e).with_context(
                operation=operation
            ) from e


def _workflow_from_row(row: Any) -> Workflow:
    return Workflow(
        id=row.id,
        user_email=row.user_email,
        interval_seconds=row.interval_seconds,
        starting_time=row.workflow_starting_time,
        last_execution_time=row.last_execution_time,
        current_status=WorkflowStatus(row.current_status),
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _record_from_row(row: Any) -> Record:
    return Record(
        id=row.id,
        payload=row.data,
        status=RecordStatus(row.status),
        workflow_id=row.workflow_id,
        processed_at=row.processed_at,
        status_changed_at=row.status_changed_at,
        error_message=row.error_message,
        processing_attempts=row.processing_attempts,
        created_at=row.created_at,
    )


def _status_after_run() -> Any:
    return case((WorkflowTable.is_active.is_(True), WorkflowStatus.IDLE.value), else_=WorkflowStatus.DISABLED.value)


def _retry_due(now: datetime, retry_delays: Sequence[timedelta]) -> Any:
    # One bucket per backoff step; the last step covers every higher attempt count.
    last = len(retry_delays)
    attempts = RecordTable.processing_attempts
    buckets = [and_(attempts <= 0, RecordTable.processed_at <= now)]
    for step, delay in enumerate(retry_delays, start=1):
        matches = attempts >= step if step == last else attempts == step
        buckets.append(and_(matches, RecordTable.processed_at <= now - delay))
    return or_(*buckets)


class SQLWorkflowStore(_SQLStore):
    """Workflow store on the ``workflows`` table."""

    def create(self, spec: WorkflowCreate, now: datetime) -> Workflow:
        status = WorkflowStatus.INITIALIZED if spec.is_active else WorkflowStatus.DISABLED
        with self._begin("workflow.create") as conn:
            result = conn.execute(
                insert(WorkflowTable).values(
                    user_email=spec.user_email,
                    interval_seconds=spec.interval_seconds,
                    workflow_starting_time=spec.starting_time,
                    current_status=status.value,
                    is_active=spec.is_active,
                    created_at=now,
                )
            )
            workflow_id = result.inserted_primary_key[0]
        logger.info("workflow_created", workflow_id=workflow_id, interval_seconds=spec.interval_seconds)
        return Workflow(
            id=workflow_id,
            user_email=spec.user_email,
            interval_seconds=spec.interval_seconds,
            starting_time=spec.starting_time,
            current_status=status,
            is_active=spec.is_active,
            created_at=now,
        )

    def get(self, workflow_id: int) -> Workflow | None:
        with self._begin("workflow.get") as conn:
            row = conn.execute(select(WorkflowTable).where(WorkflowTable.id == workflow_id)).first()
        return _workflow_from_row(row) if row else None

    def list_all(self) -> list[Workflow]:
        with self._begin("workflow.list") as conn:
            rows = conn.execute(select(WorkflowTable).order_by(WorkflowTable.id)).all()
        return [_workflow_from_row(r) for r in rows]

    def list_due(self, now: datetime) -> list[Workflow]:
        # Interval arithmetic differs per dialect; filter candidates in Python.
        stmt = (
            select(WorkflowTable)
            .where(WorkflowTable.is_active.is_(True))
            .where(WorkflowTable.current_status.in_(_CLAIMABLE))
            .order_by(WorkflowTable.id)
        )
        with self._begin("workflow.list_due") as conn:
            rows = conn.execute(stmt).all()
        return [w for w in map(_workflow_from_row, rows) if w.is_due(now)]

    def claim_run(self, workflow_id: int) -> bool:
        stmt = (
            update(WorkflowTable)
            .where(WorkflowTable.id == workflow_id)
            .where(WorkflowTable.is_active.is_(True))
            .where(WorkflowTable.current_status.in_(_CLAIMABLE))
            .values(current_status=WorkflowStatus.RUNNING.value)
        )
        with self._begin("workflow.claim_run") as conn:
            return conn.execute(stmt).rowcount == 1

    def complete_run(self, workflow_id: int, finished_at: datetime) -> bool:
        finished = literal(finished_at, type_=UTCDateTime())
        stmt = (
            update(WorkflowTable)
            .where(WorkflowTable.id == workflow_id)
            .where(WorkflowTable.current_status == WorkflowStatus.RUNNING.value)
            .values(
                current_status=_status_after_run(),
                last_execution_time=case(
                    (WorkflowTable.last_execution_time.is_(None), finished),
                    (WorkflowTable.last_execution_time < finished, finished),
                    else_=WorkflowTable.last_execution_time,
                ),
            )
        )
        with self._begin("workflow.complete_run") as conn:
            return conn.execute(stmt).rowcount == 1

    def reset_run(self, workflow_id: int) -> bool:
        stmt = (
            update(WorkflowTable)
            .where(WorkflowTable.id == workflow_id)
            .where(WorkflowTable.current_status == WorkflowStatus.RUNNING.value)
            .values(current_status=_status_after_run())
        )
        with self._begin("workflow.reset_run") as conn:
            return conn.execute(stmt).rowcount == 1

    def set_active(self, workflow_id: int, active: bool) -> bool:
        if active:
            status = case(
                (WorkflowTable.current_status == WorkflowStatus.DISABLED.value, WorkflowStatus.IDLE.value),
                else_=WorkflowTable.current_status,
            )
        else:
            status = case(
                (WorkflowTable.current_status.in_(_CLAIMABLE), WorkflowStatus.DISABLED.value),
                else_=WorkflowTable.current_status,
            )
        stmt = (
            update(WorkflowTable)
            .where(WorkflowTable.id == workflow_id)
            .values(is_active=active, current_status=status)
        )
        with self._begin("workflow.set_active") as conn:
            return conn.execute(stmt).rowcount == 1


class SQLRecordStore(_SQLStore):
    """Record store on the ``records`` table."""

    def insert(self, payload: dict[str, Any], now: datetime) -> int:
        with self._begin("record.insert") as conn:
            result = conn.execute(
                insert(RecordTable).values(
                    data=payload,
                    status=RecordStatus.PENDING.value,
                    processing_attempts=0,
                    status_changed_at=now,
                    created_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get(self, record_id: int) -> Record | None:
        with self._begin("record.get") as conn:
            row = conn.execute(select(RecordTable).where(RecordTable.id == record_id)).first()
        return _record_from_row(row) if row else None

    def list(self, status: RecordStatus | None = None, limit: int = 100) -> list[Record]:
        stmt = select(RecordTable).order_by(RecordTable.created_at, RecordTable.id).limit(limit)
        if status is not None:
            stmt = stmt.where(RecordTable.status == RecordStatus(status).value)
        with self._begin("record.list") as conn:
            rows = conn.execute(stmt).all()
        return [_record_from_row(r) for r in rows]

    def list_pending(self, created_since: datetime, limit: int) -> list[Record]:
        stmt = (
            select(RecordTable)
            .where(RecordTable.status == RecordStatus.PENDING.value)
            .where(RecordTable.created_at >= created_since)
            .order_by(RecordTable.created_at, RecordTable.id)
            .limit(limit)
        )
        with self._begin("record.list_pending") as conn:
            rows = conn.execute(stmt).all()
        return [_record_from_row(r) for r in rows]

    def list_failed(
        self, created_since: datetime, now: datetime, retry_delays: Sequence[timedelta], limit: int
    ) -> list[Record]:
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        stmt = (
            select(RecordTable)
            .where(RecordTable.status == RecordStatus.FAILED.value)
            .where(RecordTable.created_at >= created_since)
            .where(_retry_due(now, retry_delays))
            .order_by(RecordTable.processed_at, RecordTable.id)
            .limit(limit)
        )
        with self._begin("record.list_failed") as conn:
            rows = conn.execute(stmt).all()
        return [_record_from_row(r) for r in rows]

    def list_stuck(self, changed_before: datetime, limit: int) -> list[Record]:
        stmt = (
            select(RecordTable)
            .where(RecordTable.status == RecordStatus.PROCESSING.value)
            .where(RecordTable.status_changed_at < changed_before)
            .order_by(RecordTable.status_changed_at, RecordTable.id)
            .limit(limit)
        )
        with self._begin("record.list_stuck") as conn:
            rows = conn.execute(stmt).all()
        return [_record_from_row(r) for r in rows]

    def transition(self, record_id: int, change: RecordTransition) -> bool:
        values: dict[str, Any] = {
            "status": change.target.value,
            "status_changed_at": change.at,
        }
        if change.workflow_id is not None:
            values["workflow_id"] = change.workflow_id
        if change.touch_processed_at:
            values["processed_at"] = change.at
        if change.clear_error:
            values["error_message"] = None
        if change.error_message is not None:
            values["error_message"] = change.error_message
        if change.increment_attempts:
            values["processing_attempts"] = RecordTable.processing_attempts + 1

        stmt = (
            update(RecordTable)
            .where(RecordTable.id == record_id)
            .where(RecordTable.status == change.source.value)
        )
        if change.expected_changed_at is not None:
            stmt = stmt.where(RecordTable.status_changed_at == change.expected_changed_at)

        with self._begin("record.transition") as conn:
            return conn.execute(stmt.values(**values)).rowcount == 1

    def count_by_status(self) -> dict[str, int]:
        stmt = select(RecordTable.status, func.count()).group_by(RecordTable.status)
        with self._begin("record.count_by_status") as conn:
            rows = conn.execute(stmt).all()
        counts = {status.value: 0 for status in RecordStatus}
        counts.update({status: count for status, count in rows})
        return counts
