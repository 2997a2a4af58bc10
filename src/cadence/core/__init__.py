"""Cadence Core -- domain model, persistence and scheduling primitives.

Architecture::

    Layer 1 -- Types & Errors
        models.py          Workflow, Record, LifecycleEvent, status enums
        state_machine.py   Record transition edges + RecordTransition builders
        errors.py          CadenceError hierarchy
        clock.py           Clock protocol, SystemClock, ManualClock

    Layer 2 -- Persistence
        stores/            WorkflowStore / RecordStore protocols,
                           in-memory and SQLAlchemy implementations
        orm/               SQLAlchemy 2.0 tables + engine helpers

    Layer 3 -- Runtime
        events/            EventEmitter + stock observers
        scheduling/        DueWorkflowScanner, tick backends, CadenceService

    Cross-cutting
        logging.py         structlog configuration
        settings.py        CadenceSettings (pydantic-settings)
        factory.py         Component wiring from settings

Sub-packages are imported explicitly; this module re-exports only the
Layer 1 names.
"""

from cadence.core.clock import Clock, ManualClock, SystemClock, utc_now
from cadence.core.errors import (
    CadenceError,
    ConfigError,
    IllegalTransitionError,
    ProcessingError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
    WorkflowNotFoundError,
)
from cadence.core.models import (
    EventType,
    LifecycleEvent,
    Record,
    RecordStatus,
    Workflow,
    WorkflowCreate,
    WorkflowStatus,
)

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "utc_now",
    "CadenceError",
    "ConfigError",
    "IllegalTransitionError",
    "ProcessingError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
    "WorkflowNotFoundError",
    "EventType",
    "LifecycleEvent",
    "Record",
    "RecordStatus",
    "Workflow",
    "WorkflowCreate",
    "WorkflowStatus",
]
