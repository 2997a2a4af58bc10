"""Tests for the record state machine."""

import itertools

import pytest

from cadence.core import state_machine
from cadence.core.errors import IllegalTransitionError
from cadence.core.models import RecordStatus

from conftest import T0


class TestEdgeSet:
    """The six legal edges and nothing else."""

    def test_legal_edges(self):
        assert state_machine.is_legal(RecordStatus.PENDING, RecordStatus.PROCESSING)
        assert state_machine.is_legal(RecordStatus.PROCESSING, RecordStatus.COMPLETED)
        assert state_machine.is_legal(RecordStatus.PROCESSING, RecordStatus.FAILED)
        assert state_machine.is_legal(RecordStatus.PROCESSING, RecordStatus.DEAD)
        assert state_machine.is_legal(RecordStatus.FAILED, RecordStatus.PENDING)
        assert state_machine.is_legal(RecordStatus.PROCESSING, RecordStatus.PENDING)

    def test_exactly_six_edges(self):
        legal = [
            (a, b) for a, b in itertools.product(RecordStatus, repeat=2) if state_machine.is_legal(a, b)
        ]
        assert len(legal) == 6

    def test_terminal_statuses_have_no_outgoing_edges(self):
        for terminal in state_machine.TERMINAL_STATUSES:
            for target in RecordStatus:
                assert not state_machine.is_legal(terminal, target)

    def test_pending_cannot_skip_processing(self):
        """No record reaches an outcome without passing through processing."""
        for target in (RecordStatus.COMPLETED, RecordStatus.FAILED, RecordStatus.DEAD):
            assert not state_machine.is_legal(RecordStatus.PENDING, target)

    def test_accepts_plain_strings(self):
        assert state_machine.is_legal("pending", "processing")

    def test_ensure_legal_raises(self):
        with pytest.raises(IllegalTransitionError) as exc:
            state_machine.ensure_legal(RecordStatus.COMPLETED, RecordStatus.PENDING)
        assert "completed" in str(exc.value)
        assert "pending" in str(exc.value)


class TestRecordTransition:
    """Transition descriptors validate their edge on construction."""

    def test_illegal_descriptor_rejected(self):
        with pytest.raises(IllegalTransitionError):
            state_machine.RecordTransition(source=RecordStatus.DEAD, target=RecordStatus.PENDING, at=T0)

    def test_failed_to_processing_is_not_direct(self):
        """A retry goes failed → pending → processing, never straight back."""
        with pytest.raises(IllegalTransitionError):
            state_machine.RecordTransition(source=RecordStatus.FAILED, target=RecordStatus.PROCESSING, at=T0)

    def test_claim(self):
        change = state_machine.claim(7, T0)
        assert (change.source, change.target) == (RecordStatus.PENDING, RecordStatus.PROCESSING)
        assert change.workflow_id == 7
        assert change.touch_processed_at
        assert not change.increment_attempts

    def test_complete_clears_error(self):
        change = state_machine.complete(T0)
        assert change.target == RecordStatus.COMPLETED
        assert change.clear_error
        assert change.touch_processed_at

    def test_fail_counts_attempt(self):
        change = state_machine.fail(RecordStatus.DEAD, "ValueError: bad", T0)
        assert change.target == RecordStatus.DEAD
        assert change.increment_attempts
        assert change.error_message == "ValueError: bad"

    def test_requeue_keeps_attempts(self):
        change = state_machine.requeue(T0)
        assert (change.source, change.target) == (RecordStatus.FAILED, RecordStatus.PENDING)
        assert not change.increment_attempts
        assert not change.touch_processed_at

    def test_recover_is_keyed_on_observed_timestamp(self):
        change = state_machine.recover(T0, T0)
        assert (change.source, change.target) == (RecordStatus.PROCESSING, RecordStatus.PENDING)
        assert change.expected_changed_at == T0
        assert change.increment_attempts
        assert change.error_message == state_machine.RECOVERED_MESSAGE == "recovered from stuck state"
