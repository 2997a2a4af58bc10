"""
Tests for CadenceService, health reporting and the service factory.

The service is assembled with ManualSchedulerBackends and a ManualClock,
so ticks, drift and timing are fully deterministic.
"""

from datetime import timedelta

import pytest

from cadence.core import state_machine
from cadence.core.errors import ConfigError, StoreUnavailableError, WorkflowNotFoundError
from cadence.core.events import EventEmitter
from cadence.core.factory import create_scheduler_backend, create_service, load_processor
from cadence.core.models import RecordStatus, WorkflowStatus
from cadence.core.scheduling import (
    CadenceService,
    DueWorkflowScanner,
    ManualSchedulerBackend,
    ThreadSchedulerBackend,
)
from cadence.core.settings import CadenceSettings, SchedulerBackendName
from cadence.execution import RecordExecutor, RecoverySweeper


def _noop(payload):
    return None


@pytest.fixture
def service(workflow_store, record_store, clock, collector):
    emitter = EventEmitter()
    emitter.subscribe(collector)
    executor = RecordExecutor(record_store, _noop, emitter=emitter, clock=clock)
    svc = CadenceService(
        workflows=workflow_store,
        records=record_store,
        scanner=DueWorkflowScanner(workflow_store, executor, emitter=emitter, clock=clock),
        sweeper=RecoverySweeper(record_store, emitter=emitter, clock=clock),
        emitter=emitter,
        scan_backend=ManualSchedulerBackend(clock=clock),
        sweep_backend=ManualSchedulerBackend(clock=clock),
        scan_interval_seconds=10,
        sweep_interval_seconds=60,
        drift_warning_ms=1000,
    )
    yield svc
    svc.close()


class TestLifecycle:
    def test_start_stop_restart(self, service):
        service.start()
        assert service.is_running
        assert service.scan_backend.is_running
        assert service.sweep_backend.is_running

        service.stop()
        assert not service.is_running
        assert not service.scan_backend.is_running

        service.start()
        assert service.is_running

    def test_ticks_drive_scan_and_sweep(self, service, workflow_store, record_store, make_workflow, clock):
        wf = make_workflow(workflow_store)
        record_id = record_store.insert({}, now=clock.now())
        stuck_id = record_store.insert({}, now=clock.now())
        record_store.transition(stuck_id, state_machine.claim(wf.id, clock.now()))
        service.start()

        clock.advance(seconds=10)
        service.scan_backend.fire()
        assert record_store.get(record_id).status == RecordStatus.COMPLETED

        clock.advance(minutes=6)
        service.sweep_backend.fire()
        assert record_store.get(stuck_id).status == RecordStatus.PENDING

    def test_stop_flushes_events(self, service, workflow_store, make_workflow, collector):
        make_workflow(workflow_store)
        service.start()
        service.scan_now()
        service.stop()
        assert [e.event_type for e in collector.events] == ["workflow_run_started", "workflow_run_finished"]


class TestManualOperations:
    def test_scan_now_and_sweep_now(self, service, workflow_store, make_workflow):
        make_workflow(workflow_store)
        assert service.scan_now().started == 1
        assert service.sweep_now().examined == 0

    def test_reset_workflow(self, service, workflow_store, make_workflow):
        wf = make_workflow(workflow_store)
        workflow_store.claim_run(wf.id)

        assert service.reset_workflow(wf.id) is True
        assert workflow_store.get(wf.id).current_status == WorkflowStatus.IDLE
        assert service.reset_workflow(wf.id) is False

    def test_reset_unknown_workflow(self, service):
        with pytest.raises(WorkflowNotFoundError):
            service.reset_workflow(404)


class TestHealth:
    def test_stopped_service_is_unhealthy(self, service):
        health = service.health()
        assert health.healthy is False
        assert health.running is False
        assert health.errors == []

    def test_running_service_is_healthy(self, service, record_store, clock):
        record_store.insert({}, now=clock.now())
        service.start()

        health = service.health()

        assert health.healthy is True
        assert health.checks["scan_backend_running"] is True
        assert health.checks["store_reachable"] is True
        assert health.records["pending"] == 1
        assert health.to_dict()["backends"]["scan"]["backend"] == "manual"

    def test_drift_warning(self, service, clock):
        service.start()
        clock.advance(seconds=12)
        service.scan_backend.fire()

        health = service.health()

        assert health.drift_ms == pytest.approx(2000.0)
        assert health.drift_warning is True
        assert health.healthy is True
        assert any("drift" in w.lower() for w in health.warnings)

    def test_no_drift_warning_when_on_time(self, service, clock):
        service.start()
        clock.advance(seconds=10)
        service.scan_backend.fire()
        assert service.health().drift_warning is False

    def test_stopped_backend_is_an_error(self, service):
        service.start()
        service.sweep_backend.stop()
        health = service.health()
        assert health.healthy is False
        assert "sweep backend is not running" in health.errors

    def test_store_failure(self, service, record_store):
        def down():
            raise StoreUnavailableError("database unreachable")

        record_store.count_by_status = down
        service.start()
        health = service.health()
        assert health.healthy is False
        assert health.checks["store_reachable"] is False

    def test_stranded_run_warning(self, service, workflow_store, make_workflow):
        wf = make_workflow(workflow_store)
        workflow_store.claim_run(wf.id)
        health = service.health()
        assert health.running_workflows == [wf.id]
        assert any("reset" in w for w in health.warnings)


class TestFactory:
    def test_create_service(self, sqlite_engine, clock):
        settings = CadenceSettings(database_url="sqlite:///:memory:", scan_interval_seconds=5)
        svc = create_service(
            settings,
            processor=_noop,
            engine=sqlite_engine,
            clock=clock,
            scan_backend=ManualSchedulerBackend(clock=clock),
            sweep_backend=ManualSchedulerBackend(clock=clock),
        )
        try:
            assert svc.scan_interval == 5
            assert svc.scanner.executor.batch_size == settings.batch_size
            assert svc.sweeper.stuck_threshold == timedelta(seconds=300)
            assert svc.scan_now().due == 0
        finally:
            svc.close()

    def test_default_backend_is_thread(self):
        backend = create_scheduler_backend(CadenceSettings(), "scan")
        assert isinstance(backend, ThreadSchedulerBackend)

    def test_apscheduler_backend(self):
        pytest.importorskip("apscheduler")
        settings = CadenceSettings(scheduler_backend=SchedulerBackendName.APSCHEDULER)
        assert create_scheduler_backend(settings, "sweep").name == "apscheduler"


class TestLoadProcessor:
    def test_resolves_callable(self):
        assert load_processor("json:dumps")({"a": 1}) == '{"a": 1}'

    def test_dotted_attribute(self):
        assert callable(load_processor("os:path.basename"))

    @pytest.mark.parametrize(
        "path",
        ["json.dumps", ":dumps", "json:", "cadence_missing_module:run", "json:no_such_function", "json:__name__"],
    )
    def test_rejects(self, path):
        with pytest.raises(ConfigError):
            load_processor(path)
