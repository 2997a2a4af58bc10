"""Engine service — scanner, sweeper, emitter and two tick backends.

Manifesto:
    The CadenceService is the one object an application starts and stops.
    It owns no logic of its own: the scanner decides what a scan does, the
    sweeper what a sweep does, and the backends when either happens. The
    beat-as-poller split keeps every piece testable without threads.

Tags:
    cadence, scheduling, orchestrator, beat-as-poller, service

┌──────────────────────────────────────────────────────────────────────────────┐
│  CADENCE SERVICE                                                              │
│                                                                               │
│   ┌─────────────────┐  tick every scan_interval   ┌─────────────────────┐    │
│   │  scan_backend   │ ──────────────────────────► │  DueWorkflowScanner │    │
│   └─────────────────┘                             │   └─ RecordExecutor │    │
│                                                   └──────────┬──────────┘    │
│   ┌─────────────────┐  tick every sweep_interval  ┌──────────┴──────────┐    │
│   │  sweep_backend  │ ──────────────────────────► │  RecoverySweeper    │    │
│   └─────────────────┘                             └──────────┬──────────┘    │
│                                                              ▼               │
│                                                   ┌─────────────────────┐    │
│                                                   │  EventEmitter       │    │
│                                                   │  → observers        │    │
│                                                   └─────────────────────┘    │
│                                                                               │
│   Public API:                                                                 │
│   ├── start() / stop() / close()                                             │
│   ├── scan_now()            one scan pass, synchronously                     │
│   ├── sweep_now()           one sweep pass, synchronously                    │
│   ├── reset_workflow(id)    clear a run stranded in ``running``              │
│   └── health()              ServiceHealth                                    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from cadence.core.errors import WorkflowNotFoundError
from cadence.core.events import EventEmitter
from cadence.core.logging import get_logger
from cadence.core.stores.protocol import RecordStore, WorkflowStore
from cadence.execution.recovery import RecoverySweeper, SweepResult

from .health import ServiceHealth, check_service_health
from .protocol import SchedulerBackend
from .scanner import DueWorkflowScanner, ScanResult

logger = get_logger(__name__)


class CadenceService:
    """Runs the engine.

    Example:
        >>> service = CadenceService(
        ...     workflows=workflows,
        ...     records=records,
        ...     scanner=scanner,
        ...     sweeper=sweeper,
        ...     emitter=emitter,
        ...     scan_backend=ThreadSchedulerBackend("cadence-scan"),
        ...     sweep_backend=ThreadSchedulerBackend("cadence-sweep"),
        ... )
        >>> service.start()
        >>> # Later...
        >>> service.close()

    Most callers get one from :func:`cadence.core.factory.create_service`.
    """

    def __init__(
        self,
        *,
        workflows: WorkflowStore,
        records: RecordStore,
        scanner: DueWorkflowScanner,
        sweeper: RecoverySweeper,
        emitter: EventEmitter,
        scan_backend: SchedulerBackend,
        sweep_backend: SchedulerBackend,
        scan_interval_seconds: float = 10.0,
        sweep_interval_seconds: float = 60.0,
        drift_warning_ms: float = 1000.0,
    ) -> None:
        self.workflows = workflows
        self.records = records
        self.scanner = scanner
        self.sweeper = sweeper
        self.emitter = emitter
        self.scan_backend = scan_backend
        self.sweep_backend = sweep_backend
        self.scan_interval = scan_interval_seconds
        self.sweep_interval = sweep_interval_seconds
        self.drift_warning_ms = drift_warning_ms

        self._running = False

    # === Lifecycle ===

    def start(self) -> None:
        """Start both tick loops."""
        if self._running:
            logger.warning("service_already_running")
            return

        logger.info(
            "service_starting",
            scan_backend=self.scan_backend.name,
            scan_interval_seconds=self.scan_interval,
            sweep_backend=self.sweep_backend.name,
            sweep_interval_seconds=self.sweep_interval,
        )
        self.emitter.start()
        self.scan_backend.start(self.scanner.tick, self.scan_interval)
        self.sweep_backend.start(self.sweeper.tick, self.sweep_interval)
        self._running = True

    def stop(self) -> None:
        """Stop both tick loops and deliver queued events.

        Waits for in-flight ticks to complete. The service can be
        started again.
        """
        if not self._running:
            return

        logger.info("service_stopping")
        self.scan_backend.stop()
        self.sweep_backend.stop()
        if not self.emitter.flush(timeout=5.0):
            logger.warning("event_flush_timeout", queued=self.emitter.stats()["queued"])
        self._running = False
        logger.info("service_stopped")

    def close(self) -> None:
        """Stop and shut the event dispatcher down."""
        self.stop()
        self.emitter.close()

    @property
    def is_running(self) -> bool:
        return self._running

    # === Manual Operations ===

    def scan_now(self) -> ScanResult:
        """Run one scan pass in the calling thread.

        Raises:
            StoreError: a store failed during the pass
        """
        return self.scanner.scan_once()

    def sweep_now(self) -> SweepResult:
        """Run one recovery pass in the calling thread."""
        return self.sweeper.sweep_once()

    def reset_workflow(self, workflow_id: int) -> bool:
        """Return a workflow stranded in ``running`` to ``idle``.

        Returns:
            False if the workflow was not running

        Raises:
            WorkflowNotFoundError: no workflow has this id
        """
        if self.workflows.get(workflow_id) is None:
            raise WorkflowNotFoundError(workflow_id)
        reset = self.workflows.reset_run(workflow_id)
        if reset:
            logger.warning("workflow_run_reset", workflow_id=workflow_id)
        else:
            logger.info("workflow_not_running", workflow_id=workflow_id)
        return reset

    # === Health ===

    def health(self) -> ServiceHealth:
        return check_service_health(self, drift_warning_ms=self.drift_warning_ms)


__all__ = ["CadenceService"]
