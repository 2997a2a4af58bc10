"""SQLAlchemy models and engine helpers for cadence."""

from cadence.core.orm.base import CadenceBase, UTCDateTime
from cadence.core.orm.session import create_cadence_engine, drop_db, init_db
from cadence.core.orm.tables import LifecycleLogTable, RecordTable, WorkflowTable

__all__ = [
    "CadenceBase",
    "UTCDateTime",
    "WorkflowTable",
    "RecordTable",
    "LifecycleLogTable",
    "create_cadence_engine",
    "init_db",
    "drop_db",
]
