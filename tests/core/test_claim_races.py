"""
Concurrency tests for conditional claims.

Many threads race the same claim; exactly one may win. The SQL variant
uses a file-backed SQLite database so each thread gets its own
connection.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from cadence.core import state_machine
from cadence.core.models import RecordStatus, WorkflowCreate, WorkflowStatus
from cadence.core.stores import InMemoryRecordStore, InMemoryWorkflowStore
from cadence.core.stores.sql import SQLRecordStore, SQLWorkflowStore

from conftest import T0

RACERS = 8

pytestmark = pytest.mark.integration


def _race(fn, n: int = RACERS) -> list[bool]:
    barrier = threading.Barrier(n)

    def _go(i: int) -> bool:
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(_go, range(n)))


@pytest.fixture(params=["memory", "sqlite-file"])
def race_stores(request, file_engine):
    if request.param == "memory":
        return InMemoryWorkflowStore(), InMemoryRecordStore()
    return SQLWorkflowStore(file_engine), SQLRecordStore(file_engine)


class TestRecordClaimRace:
    def test_exactly_one_claim_wins(self, race_stores):
        _, records = race_stores
        record_id = records.insert({"n": 1}, now=T0)

        results = _race(lambda i: records.transition(record_id, state_machine.claim(i + 1, T0)))

        assert results.count(True) == 1
        record = records.get(record_id)
        assert record.status == RecordStatus.PROCESSING
        assert record.workflow_id == results.index(True) + 1

    def test_recover_races_complete(self, race_stores):
        """The sweeper and a late worker contend; exactly one transition applies."""
        _, records = race_stores
        record_id = records.insert({}, now=T0)
        records.transition(record_id, state_machine.claim(1, T0))

        changes = [state_machine.recover(T0, T0), state_machine.complete(T0)] * (RACERS // 2)
        results = _race(lambda i: records.transition(record_id, changes[i]))

        assert results.count(True) == 1
        assert records.get(record_id).status in (RecordStatus.PENDING, RecordStatus.COMPLETED)


class TestWorkflowClaimRace:
    def test_exactly_one_run_claim_wins(self, race_stores):
        workflows, _ = race_stores
        wf = workflows.create(WorkflowCreate(user_email="ops@example.com", interval_seconds=10), now=T0)

        results = _race(lambda i: workflows.claim_run(wf.id))

        assert results.count(True) == 1
        assert workflows.get(wf.id).current_status == WorkflowStatus.RUNNING
