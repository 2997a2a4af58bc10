"""Tests for RecoverySweeper."""

from datetime import timedelta

import pytest

from cadence.core import state_machine
from cadence.core.errors import StoreUnavailableError
from cadence.core.models import EventType, RecordStatus
from cadence.execution import RecordExecutor, RecoverySweeper

from conftest import T0


def _claimed(record_store, clock, workflow_id: int = 1) -> int:
    record_id = record_store.insert({"n": 1}, now=clock.now())
    record_store.transition(record_id, state_machine.claim(workflow_id, clock.now()))
    return record_id


class TestSweep:
    """Stuck processing records go back to pending."""

    def test_recovers_stuck_record(self, record_store, clock, emitter, collector):
        """Claimed at T0, worker died, swept at T0 + 6 minutes."""
        record_id = _claimed(record_store, clock)
        clock.advance(minutes=6)

        result = RecoverySweeper(record_store, emitter=emitter, clock=clock).sweep_once()

        assert (result.examined, result.recovered, result.skipped) == (1, 1, 0)
        record = record_store.get(record_id)
        assert record.status == RecordStatus.PENDING
        assert record.processing_attempts == 1
        assert record.error_message == "recovered from stuck state"
        assert record.status_changed_at == T0 + timedelta(minutes=6)

        emitter.flush()
        (event,) = collector.of_type(EventType.RECORD_RECOVERED)
        assert (event.workflow_id, event.record_id, event.status) == (1, record_id, "pending")
        assert event.timestamp == T0 + timedelta(minutes=6)

    def test_within_threshold_left_alone(self, record_store, clock):
        record_id = _claimed(record_store, clock)
        clock.advance(minutes=4)

        result = RecoverySweeper(record_store, clock=clock).sweep_once()

        assert result.examined == 0
        assert record_store.get(record_id).status == RecordStatus.PROCESSING

    def test_custom_threshold(self, record_store, clock):
        _claimed(record_store, clock)
        clock.advance(seconds=31)
        sweeper = RecoverySweeper(record_store, clock=clock, stuck_threshold=timedelta(seconds=30))
        assert sweeper.sweep_once().recovered == 1

    def test_invalid_threshold(self, record_store):
        with pytest.raises(ValueError):
            RecoverySweeper(record_store, stuck_threshold=timedelta(0))

    def test_recovered_record_is_reprocessed(self, record_store, workflow_store, make_workflow, clock):
        wf = make_workflow(workflow_store)
        record_id = _claimed(record_store, clock, wf.id)
        clock.advance(minutes=6)
        RecoverySweeper(record_store, clock=clock).sweep_once()

        result = RecordExecutor(record_store, lambda payload: None, clock=clock).run(wf)

        assert result.completed == 1
        record = record_store.get(record_id)
        assert record.status == RecordStatus.COMPLETED
        assert record.processing_attempts == 1

    def test_attempts_count_towards_dead_letter(self, record_store, workflow_store, make_workflow, clock):
        """A recovery counts as an attempt, so the next failure sees it."""
        wf = make_workflow(workflow_store)
        record_id = _claimed(record_store, clock, wf.id)
        clock.advance(minutes=6)
        RecoverySweeper(record_store, clock=clock).sweep_once()

        def boom(payload):
            raise RuntimeError("still broken")

        RecordExecutor(record_store, boom, clock=clock).run(wf)
        assert record_store.get(record_id).processing_attempts == 2


class TestRaces:
    def test_worker_finishes_first(self, record_store, clock):
        """The record completes between listing and recovery: skip it."""
        record_id = _claimed(record_store, clock)
        clock.advance(minutes=6)
        list_stuck = record_store.list_stuck

        def list_then_complete(changed_before, limit):
            stuck = list_stuck(changed_before, limit)
            record_store.transition(record_id, state_machine.complete(clock.now()))
            return stuck

        record_store.list_stuck = list_then_complete
        sweeper = RecoverySweeper(record_store, clock=clock)
        result = sweeper.sweep_once()

        assert (result.examined, result.recovered, result.skipped) == (1, 0, 1)
        assert record_store.get(record_id).status == RecordStatus.COMPLETED
        assert sweeper.stats.skipped == 1

    def test_reclaimed_since_listing(self, record_store, clock):
        """Recovered and re-claimed by someone else: the timestamp no longer matches."""
        record_id = _claimed(record_store, clock)
        observed = record_store.get(record_id)
        clock.advance(minutes=6)
        record_store.transition(record_id, state_machine.recover(observed.status_changed_at, clock.now()))
        clock.advance(seconds=1)
        record_store.transition(record_id, state_machine.claim(2, clock.now()))

        stale = state_machine.recover(observed.status_changed_at, clock.now())
        assert record_store.transition(record_id, stale) is False


class TestTick:
    @pytest.mark.asyncio
    async def test_tick_counts_errors(self, record_store, clock, monkeypatch):
        def down(changed_before, limit):
            raise StoreUnavailableError("database unreachable")

        monkeypatch.setattr(record_store, "list_stuck", down)
        sweeper = RecoverySweeper(record_store, clock=clock)

        await sweeper.tick()

        assert sweeper.stats.errors == 1
        assert sweeper.stats.sweeps == 0

    @pytest.mark.asyncio
    async def test_tick_sweeps(self, record_store, clock):
        _claimed(record_store, clock)
        clock.advance(minutes=10)
        sweeper = RecoverySweeper(record_store, clock=clock)

        await sweeper.tick()

        assert sweeper.stats.to_dict() == {"sweeps": 1, "recovered": 1, "skipped": 0, "errors": 0}

    def test_sweep_once_propagates_store_errors(self, record_store, clock, monkeypatch):
        def down(changed_before, limit):
            raise StoreUnavailableError("database unreachable")

        monkeypatch.setattr(record_store, "list_stuck", down)
        with pytest.raises(StoreUnavailableError):
            RecoverySweeper(record_store, clock=clock).sweep_once()
