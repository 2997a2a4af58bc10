"""Record executor — claims one batch for a workflow and drives it through
the record state machine.

::

    run(workflow)
      │
      ├── fetch eligible   pending (created_at >= starting_time)
      │                  + failed whose backoff elapsed
      │                  → merged oldest-first, capped at batch_size
      │
      └── for each record
            ├── failed?  failed → pending          (lost race → skip)
            ├── claim    pending → processing      (lost race → skip)
            ├── processor(payload)
            ├── ok       processing → completed
            └── raised   processing → failed | dead  (attempts + 1)

Processor exceptions never leave this module. Store faults
(:class:`~cadence.core.errors.StoreError`) do; a record caught mid-flight
by one stays ``processing`` until the recovery sweeper resets it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cadence.core import state_machine
from cadence.core.clock import Clock, SystemClock
from cadence.core.events import EventEmitter, EventType
from cadence.core.logging import LogContext, get_logger
from cadence.core.models import Record, RecordStatus, Workflow
from cadence.core.stores.protocol import RecordStore
from cadence.execution.retry import RetryPolicy

logger = get_logger(__name__)

Processor = Callable[[dict[str, Any]], Any]

DEFAULT_BATCH_SIZE = 100


@dataclass
class ExecutionResult:
    """Outcome counts for one executor run."""

    workflow_id: int
    fetched: int = 0
    claimed: int = 0
    skipped: int = 0
    completed: int = 0
    failed: int = 0
    dead_lettered: int = 0
    record_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "fetched": self.fetched,
            "claimed": self.claimed,
            "skipped": self.skipped,
            "completed": self.completed,
            "failed": self.failed,
            "dead_lettered": self.dead_lettered,
        }


def describe_error(error: BaseException) -> str:
    """Render an exception for ``error_message``."""
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


class RecordExecutor:
    """Claims and processes records for one workflow per call.

    Example:
        >>> executor = RecordExecutor(records, processor=handle, emitter=emitter)
        >>> result = executor.run(workflow)
        >>> result.completed, result.failed
        (12, 1)
    """

    def __init__(
        self,
        records: RecordStore,
        processor: Processor,
        *,
        emitter: EventEmitter | None = None,
        policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.records = records
        self.processor = processor
        self.emitter = emitter
        self.policy = policy or RetryPolicy()
        self.clock = clock or SystemClock()
        self.batch_size = batch_size

    # === Batch ===

    def fetch_eligible(self, workflow: Workflow, now: datetime) -> list[Record]:
        """Pending plus retry-due failed records, oldest first."""
        pending = self.records.list_pending(workflow.starting_time, self.batch_size)
        failed = self.records.list_failed(workflow.starting_time, now, self.policy.retry_delays, self.batch_size)
        batch = sorted(pending + failed, key=lambda r: (r.created_at, r.id))
        return batch[: self.batch_size]

    def run(self, workflow: Workflow) -> ExecutionResult:
        """Process one batch for *workflow*.

        Raises:
            StoreError: the record store failed; the batch is abandoned
        """
        result = ExecutionResult(workflow_id=workflow.id)
        with LogContext(workflow_id=workflow.id):
            batch = self.fetch_eligible(workflow, self.clock.now())
            result.fetched = len(batch)
            if not batch:
                logger.debug("no_eligible_records")
                return result

            for candidate in batch:
                record = self._claim(workflow, candidate)
                if record is None:
                    result.skipped += 1
                    continue
                result.claimed += 1
                result.record_ids.append(record.id)
                outcome = self._process(workflow, record)
                if outcome == RecordStatus.COMPLETED:
                    result.completed += 1
                elif outcome == RecordStatus.DEAD:
                    result.dead_lettered += 1
                elif outcome == RecordStatus.FAILED:
                    result.failed += 1

            logger.info("batch_processed", **result.to_dict())
        return result

    # === Per-record ===

    def _claim(self, workflow: Workflow, record: Record) -> Record | None:
        if record.status == RecordStatus.FAILED:
            if not self.records.transition(record.id, state_machine.requeue(self.clock.now())):
                logger.debug("requeue_lost", record_id=record.id)
                return None
            self._emit(EventType.REQUEUED, workflow, record.id, RecordStatus.PENDING,
                       f"retry after {record.processing_attempts} failed attempt(s)")

        if not self.records.transition(record.id, state_machine.claim(workflow.id, self.clock.now())):
            logger.debug("claim_lost", record_id=record.id)
            return None
        # Re-read: the sweeper may have bumped attempts since the batch was listed.
        return self.records.get(record.id) or record

    def _process(self, workflow: Workflow, record: Record) -> RecordStatus | None:
        self._emit(EventType.PROCESSING_START, workflow, record.id, RecordStatus.PROCESSING)
        try:
            self.processor(record.payload)
        except Exception as e:
            return self._record_failure(workflow, record, e)

        if not self.records.transition(record.id, state_machine.complete(self.clock.now())):
            # Sweeper reclaimed it while the processor was running
            logger.warning("completion_lost", record_id=record.id)
            return None
        self._emit(EventType.COMPLETED, workflow, record.id, RecordStatus.COMPLETED)
        return RecordStatus.COMPLETED

    def _record_failure(self, workflow: Workflow, record: Record, error: Exception) -> RecordStatus | None:
        # The claimed row has the attempts we read; this failure adds one.
        attempts = record.processing_attempts + 1
        target = self.policy.next_failure_status(attempts)
        message = describe_error(error)

        if not self.records.transition(record.id, state_machine.fail(target, message, self.clock.now())):
            logger.warning("failure_update_lost", record_id=record.id, error=message)
            return None

        if target == RecordStatus.DEAD:
            logger.warning("record_dead_lettered", record_id=record.id, attempts=attempts, error=message)
            self._emit(EventType.DEAD_LETTERED, workflow, record.id, target, message)
        else:
            retry_in = self.policy.next_delay(attempts)
            logger.info("record_failed", record_id=record.id, attempts=attempts, retry_in_seconds=retry_in, error=message)
            self._emit(EventType.FAILED, workflow, record.id, target, message)
        return target

    def _emit(
        self,
        event_type: EventType,
        workflow: Workflow,
        record_id: int,
        status: RecordStatus,
        message: str = "",
    ) -> None:
        if self.emitter is not None:
            self.emitter.emit_lifecycle(
                event_type.value, workflow.id, record_id, status.value, message, timestamp=self.clock.now()
            )


__all__ = ["RecordExecutor", "ExecutionResult", "Processor", "describe_error", "DEFAULT_BATCH_SIZE"]
