"""Record and workflow stores.

Usage::

    from cadence.core.stores import InMemoryRecordStore, InMemoryWorkflowStore

    records = InMemoryRecordStore()
    record_id = records.insert({"order": 17}, now=clock.now())

SQL stores live in :mod:`cadence.core.stores.sql` and are imported lazily
so the in-memory path does not load SQLAlchemy.
"""

from cadence.core.stores.memory import AppliedTransition, InMemoryRecordStore, InMemoryWorkflowStore
from cadence.core.stores.protocol import RecordStore, WorkflowStore

__all__ = [
    "RecordStore",
    "WorkflowStore",
    "InMemoryRecordStore",
    "InMemoryWorkflowStore",
    "AppliedTransition",
    "SQLRecordStore",
    "SQLWorkflowStore",
]


def __getattr__(name: str):
    if name in ("SQLRecordStore", "SQLWorkflowStore"):
        from cadence.core.stores import sql

        return getattr(sql, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
