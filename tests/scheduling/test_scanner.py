"""
Tests for DueWorkflowScanner.

Scenarios:
- a workflow is run once its interval has elapsed since the last run
- two scanners sharing a store never run the same workflow twice
- a store fault mid-run leaves the workflow ``running`` for the operator
"""

from datetime import timedelta

import pytest

from cadence.core.errors import StoreUnavailableError
from cadence.core.models import EventType, RecordStatus, WorkflowStatus
from cadence.core.scheduling import DueWorkflowScanner
from cadence.execution import RecordExecutor

from conftest import T0


def _noop(payload):
    return None


@pytest.fixture
def scanner(workflow_store, record_store, clock, emitter):
    executor = RecordExecutor(record_store, _noop, emitter=emitter, clock=clock)
    return DueWorkflowScanner(workflow_store, executor, emitter=emitter, clock=clock)


class TestDueScan:
    def test_first_scan_runs_new_workflow(self, scanner, workflow_store, record_store, make_workflow, clock):
        wf = make_workflow(workflow_store, interval_seconds=10)
        record_id = record_store.insert({"n": 1}, now=clock.now())

        result = scanner.scan_once()

        assert (result.due, result.started, result.completed) == (1, 1, 1)
        assert result.records_completed == 1
        stored = workflow_store.get(wf.id)
        assert stored.current_status == WorkflowStatus.IDLE
        assert stored.last_execution_time == T0
        assert record_store.get(record_id).status == RecordStatus.COMPLETED

    def test_interval_elapsed(self, scanner, workflow_store, record_store, make_workflow, clock):
        """Interval 10s, last run 15s ago: the workflow runs again."""
        wf = make_workflow(workflow_store, interval_seconds=10)
        scanner.scan_once()

        clock.advance(seconds=5)
        assert scanner.scan_once().due == 0

        clock.advance(seconds=10)
        record_id = record_store.insert({}, now=clock.now())
        result = scanner.scan_once()

        assert result.started == 1
        assert record_store.get(record_id).status == RecordStatus.COMPLETED
        assert workflow_store.get(wf.id).last_execution_time == T0 + timedelta(seconds=15)

    def test_inactive_workflows_are_not_scanned(self, scanner, workflow_store, make_workflow):
        make_workflow(workflow_store, active=False)
        assert scanner.scan_once().due == 0

    def test_workflows_run_in_id_order(self, scanner, workflow_store, make_workflow, collector, emitter):
        ids = [make_workflow(workflow_store).id for _ in range(3)]
        scanner.scan_once()
        emitter.flush()
        started = [e.workflow_id for e in collector.of_type(EventType.WORKFLOW_RUN_STARTED)]
        assert started == ids

    def test_events(self, scanner, workflow_store, record_store, make_workflow, clock, collector, emitter):
        wf = make_workflow(workflow_store)
        record_store.insert({}, now=clock.now())
        scanner.scan_once()
        emitter.flush()

        types = [e.event_type for e in collector.events]
        assert types == ["workflow_run_started", "processing_start", "completed", "workflow_run_finished"]
        finished = collector.of_type(EventType.WORKFLOW_RUN_FINISHED)[0]
        assert finished.workflow_id == wf.id
        assert finished.record_id is None
        assert finished.status == "idle"
        assert finished.message == "completed=1 failed=0 dead=0"

    def test_disabled_mid_run_reports_disabled(
        self, workflow_store, record_store, make_workflow, clock, emitter, collector
    ):
        wf = make_workflow(workflow_store)
        record_store.insert({}, now=clock.now())

        def operator_disables(payload):
            workflow_store.set_active(wf.id, False)

        scanner = DueWorkflowScanner(
            workflow_store, RecordExecutor(record_store, operator_disables, clock=clock), emitter=emitter, clock=clock
        )
        scanner.scan_once()
        emitter.flush()

        assert workflow_store.get(wf.id).current_status == WorkflowStatus.DISABLED
        (finished,) = collector.of_type(EventType.WORKFLOW_RUN_FINISHED)
        assert finished.status == "disabled"
        assert finished.timestamp == T0

    def test_stats_accumulate(self, scanner, workflow_store, record_store, make_workflow, clock):
        make_workflow(workflow_store, interval_seconds=10)
        record_store.insert({}, now=clock.now())
        scanner.scan_once()
        clock.advance(seconds=10)
        scanner.scan_once()

        stats = scanner.stats.to_dict()
        assert stats["scans"] == 2
        assert stats["workflows_started"] == 2
        assert stats["records_completed"] == 1
        assert stats["last_scan"] == (T0 + timedelta(seconds=10)).isoformat()


class TestConcurrentScanners:
    def test_claim_loser_skips(self, workflow_store, record_store, make_workflow, clock, emitter):
        """Scanner B sees the workflow as due, but A already claimed it."""
        wf = make_workflow(workflow_store)
        record_store.insert({}, now=clock.now())
        stale_due = workflow_store.list_due(clock.now())
        b_results = []

        def processor_a(payload):
            b_results.append(scanner_b.scan_once())

        scanner_a = DueWorkflowScanner(
            workflow_store, RecordExecutor(record_store, processor_a, clock=clock), emitter=emitter, clock=clock
        )
        scanner_b = DueWorkflowScanner(
            workflow_store, RecordExecutor(record_store, _noop, clock=clock), emitter=emitter, clock=clock
        )
        scanner_b.workflows = _StaleDueView(workflow_store, stale_due)

        result_a = scanner_a.scan_once()

        assert result_a.started == 1
        (result_b,) = b_results
        assert (result_b.due, result_b.started, result_b.skipped) == (1, 0, 1)
        assert workflow_store.get(wf.id).current_status == WorkflowStatus.IDLE


class _StaleDueView:
    """Workflow store whose ``list_due`` answers from an old snapshot."""

    def __init__(self, store, due):
        self._store = store
        self._due = due

    def list_due(self, now):
        return list(self._due)

    def __getattr__(self, name):
        return getattr(self._store, name)


class TestFaults:
    def test_store_fault_leaves_workflow_running(self, workflow_store, record_store, make_workflow, clock):
        wf = make_workflow(workflow_store)

        def down(*args, **kwargs):
            raise StoreUnavailableError("database unreachable")

        record_store.list_pending = down
        scanner = DueWorkflowScanner(workflow_store, RecordExecutor(record_store, _noop, clock=clock), clock=clock)

        with pytest.raises(StoreUnavailableError):
            scanner.scan_once()

        assert workflow_store.get(wf.id).current_status == WorkflowStatus.RUNNING
        assert scanner.stats.workflows_started == 1
        # Stranded: never due again until reset
        clock.advance(timedelta(hours=1))
        assert workflow_store.list_due(clock.now()) == []

    @pytest.mark.asyncio
    async def test_tick_logs_and_counts(self, workflow_store, record_store, make_workflow, clock):
        make_workflow(workflow_store)

        def down(*args, **kwargs):
            raise StoreUnavailableError("database unreachable")

        record_store.list_pending = down
        scanner = DueWorkflowScanner(workflow_store, RecordExecutor(record_store, _noop, clock=clock), clock=clock)

        await scanner.tick()

        assert scanner.stats.errors == 1
        assert "database unreachable" in scanner.stats.last_error

    def test_reset_run_lost_race(self, workflow_store, record_store, make_workflow, clock):
        """An operator reset during the run: completion is skipped, the run stays idle."""
        wf = make_workflow(workflow_store)
        record_store.insert({}, now=clock.now())

        def operator_resets(payload):
            workflow_store.reset_run(wf.id)

        scanner = DueWorkflowScanner(
            workflow_store, RecordExecutor(record_store, operator_resets, clock=clock), clock=clock
        )
        result = scanner.scan_once()

        assert (result.started, result.completed) == (1, 0)
        stored = workflow_store.get(wf.id)
        assert stored.current_status == WorkflowStatus.IDLE
        assert stored.last_execution_time is None
