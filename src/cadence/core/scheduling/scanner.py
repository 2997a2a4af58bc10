"""Due-workflow scanner.

Manifesto:
    A workflow run is claimed the same way a record is: one conditional
    update (``idle|initialized → running``). Whoever flips the status owns
    the run; every other scanner instance sees zero rows and moves on.
    No lock table, no leader election.

::

    scan_once()
      │
      ├── list_due(now)                     ordered by id
      │
      └── for each due workflow
            ├── claim_run(id)               False → skipped
            ├── emit workflow_run_started
            ├── executor.run(workflow)      StoreError → workflow stays
            │                                running, pass re-raises
            ├── complete_run(id, now)       last_execution_time = max(old, now)
            └── emit workflow_run_finished

Tags:
    cadence, scheduling, scanner, compare-and-swap
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cadence.core.clock import Clock, SystemClock
from cadence.core.events import EventEmitter, EventType
from cadence.core.logging import get_logger
from cadence.core.models import Workflow, WorkflowStatus
from cadence.core.stores.protocol import WorkflowStore
from cadence.execution.executor import ExecutionResult, RecordExecutor

logger = get_logger(__name__)


@dataclass
class ScanResult:
    """Outcome of one scan pass."""

    due: int = 0
    started: int = 0
    skipped: int = 0
    completed: int = 0
    executions: list[ExecutionResult] = field(default_factory=list)

    @property
    def records_completed(self) -> int:
        return sum(e.completed for e in self.executions)

    @property
    def records_failed(self) -> int:
        return sum(e.failed for e in self.executions)

    @property
    def records_dead_lettered(self) -> int:
        return sum(e.dead_lettered for e in self.executions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "due": self.due,
            "started": self.started,
            "skipped": self.skipped,
            "completed": self.completed,
            "records_completed": self.records_completed,
            "records_failed": self.records_failed,
            "records_dead_lettered": self.records_dead_lettered,
        }


@dataclass
class ScannerStats:
    """Cumulative scanner statistics."""

    scans: int = 0
    workflows_started: int = 0
    workflows_skipped: int = 0
    workflows_completed: int = 0
    records_completed: int = 0
    records_failed: int = 0
    records_dead_lettered: int = 0
    errors: int = 0
    last_scan: datetime | None = None
    last_error: str | None = None

    def add(self, result: ScanResult) -> None:
        self.workflows_started += result.started
        self.workflows_skipped += result.skipped
        self.workflows_completed += result.completed
        self.records_completed += result.records_completed
        self.records_failed += result.records_failed
        self.records_dead_lettered += result.records_dead_lettered

    def to_dict(self) -> dict[str, Any]:
        return {
            "scans": self.scans,
            "workflows_started": self.workflows_started,
            "workflows_skipped": self.workflows_skipped,
            "workflows_completed": self.workflows_completed,
            "records_completed": self.records_completed,
            "records_failed": self.records_failed,
            "records_dead_lettered": self.records_dead_lettered,
            "errors": self.errors,
            "last_scan": self.last_scan.isoformat() if self.last_scan else None,
            "last_error": self.last_error,
        }


class DueWorkflowScanner:
    """Finds due workflows, claims a run for each and hands it to the executor.

    Example:
        >>> scanner = DueWorkflowScanner(workflows, executor, emitter=emitter)
        >>> result = scanner.scan_once()
        >>> result.started, result.skipped
        (2, 0)
    """

    def __init__(
        self,
        workflows: WorkflowStore,
        executor: RecordExecutor,
        *,
        emitter: EventEmitter | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.workflows = workflows
        self.executor = executor
        self.emitter = emitter
        self.clock = clock or SystemClock()
        self.stats = ScannerStats()

    def scan_once(self) -> ScanResult:
        """Run every due workflow once.

        Raises:
            StoreError: a store failed; workflows already started in this
                pass keep their outcome, the faulted one stays ``running``
        """
        now = self.clock.now()
        self.stats.scans += 1
        self.stats.last_scan = now

        due = sorted(self.workflows.list_due(now), key=lambda w: w.id)
        result = ScanResult(due=len(due))
        if not due:
            logger.debug("no_workflows_due")
            return result

        try:
            for workflow in due:
                self._run_workflow(workflow, result)
        finally:
            self.stats.add(result)

        logger.info("scan_completed", **result.to_dict())
        return result

    def _run_workflow(self, workflow: Workflow, result: ScanResult) -> None:
        if not self.workflows.claim_run(workflow.id):
            logger.debug("workflow_claim_lost", workflow_id=workflow.id)
            result.skipped += 1
            return

        result.started += 1
        self._emit(EventType.WORKFLOW_RUN_STARTED, workflow.id, WorkflowStatus.RUNNING)

        try:
            execution = self.executor.run(workflow)
        except Exception as e:
            logger.error(
                "workflow_run_aborted",
                workflow_id=workflow.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        result.executions.append(execution)

        if not self.workflows.complete_run(workflow.id, self.clock.now()):
            # Operator reset the run while it was executing
            logger.warning("workflow_complete_lost", workflow_id=workflow.id)
            return
        result.completed += 1
        # Re-read: the workflow may have been disabled while it ran.
        finished = self.workflows.get(workflow.id)
        if finished is not None:
            status = finished.current_status
        else:
            status = WorkflowStatus.IDLE if workflow.is_active else WorkflowStatus.DISABLED
        self._emit(
            EventType.WORKFLOW_RUN_FINISHED,
            workflow.id,
            status,
            f"completed={execution.completed} failed={execution.failed} dead={execution.dead_lettered}",
        )

    def _emit(self, event_type: EventType, workflow_id: int, status: WorkflowStatus, message: str = "") -> None:
        if self.emitter is not None:
            self.emitter.emit_lifecycle(
                event_type.value, workflow_id, None, status.value, message, timestamp=self.clock.now()
            )

    async def tick(self) -> None:
        """Tick callback: run a scan, log and count any failure."""
        try:
            self.scan_once()
        except Exception as e:
            self.stats.errors += 1
            self.stats.last_error = str(e)
            logger.exception("scan_failed")


__all__ = ["DueWorkflowScanner", "ScanResult", "ScannerStats"]
