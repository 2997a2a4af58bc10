"""
Factory functions that build engine components from settings.

Manifesto:
    Wiring lives in one place. The CLI, tests and embedding applications
    all get the same engine, stores, emitter and service for the same
    :class:`~cadence.core.settings.CadenceSettings`. The optional
    APScheduler backend is imported only when it is selected.

Features:
    - ``create_database_engine()`` — SQLAlchemy engine from settings
    - ``create_stores()`` — SQL workflow + record stores
    - ``create_scheduler_backend()`` — Thread / APScheduler
    - ``create_event_emitter()`` — emitter with logging + audit observers
    - ``create_service()`` — fully wired :class:`CadenceService`
    - ``load_processor()`` — ``module:function`` → callable

Tags:
    cadence, configuration, factory-pattern, lazy-imports, sqlalchemy
"""

from __future__ import annotations

import importlib
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from cadence.core.errors import ConfigError
from cadence.core.events import EventEmitter
from cadence.core.events.observers import LifecycleLogWriter, LoggingObserver
from cadence.core.orm import create_cadence_engine, init_db
from cadence.core.settings import CadenceSettings, SchedulerBackendName, get_settings
from cadence.core.stores.sql import SQLRecordStore, SQLWorkflowStore

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from cadence.core.clock import Clock
    from cadence.core.scheduling import CadenceService, SchedulerBackend
    from cadence.execution.executor import Processor


def create_database_engine(settings: CadenceSettings, *, create_tables: bool = True) -> Engine:
    """Create a SQLAlchemy engine for *settings.database_url*."""
    engine = create_cadence_engine(settings.database_url, echo=settings.database_echo)
    if create_tables:
        init_db(engine)
    return engine


def create_stores(engine: Engine) -> tuple[SQLWorkflowStore, SQLRecordStore]:
    return SQLWorkflowStore(engine), SQLRecordStore(engine)


def create_scheduler_backend(settings: CadenceSettings, role: str = "scan") -> SchedulerBackend:
    """Create one tick backend.

    Maps *settings.scheduler_backend* to the matching concrete class from
    :mod:`cadence.core.scheduling`. *role* names the thread or job.
    """
    match settings.scheduler_backend:
        case SchedulerBackendName.THREAD:
            from cadence.core.scheduling import ThreadSchedulerBackend

            return ThreadSchedulerBackend(thread_name=f"cadence-{role}")
        case SchedulerBackendName.APSCHEDULER:
            from cadence.core.scheduling import APSchedulerBackend

            return APSchedulerBackend(job_id=f"cadence_{role}")
    raise ConfigError(f"Unknown scheduler backend: {settings.scheduler_backend}")


def create_event_emitter(settings: CadenceSettings, engine: Engine | None = None) -> EventEmitter:
    """Emitter with a :class:`LoggingObserver` and, when enabled, the audit writer."""
    emitter = EventEmitter(buffer_size=settings.event_buffer_size)
    emitter.subscribe(LoggingObserver())
    if settings.persist_lifecycle_log and engine is not None:
        emitter.subscribe(LifecycleLogWriter(engine))
    return emitter


def load_processor(path: str) -> Processor:
    """Resolve ``package.module:function`` to a callable.

    Raises:
        ConfigError: malformed path, missing module or attribute, or not callable
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Processor must look like 'module:function', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import processor module {module_name!r}: {e}", cause=e) from e

    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ConfigError(f"Processor {path!r} not found")
    if not callable(target):
        raise ConfigError(f"Processor {path!r} is not callable")
    return target


def create_service(
    settings: CadenceSettings | None = None,
    *,
    processor: Processor,
    engine: Engine | None = None,
    clock: Clock | None = None,
    scan_backend: SchedulerBackend | None = None,
    sweep_backend: SchedulerBackend | None = None,
) -> CadenceService:
    """Build a complete, unstarted :class:`CadenceService`.

    Example:
        >>> service = create_service(get_settings(), processor=handle_record)
        >>> service.start()
    """
    from cadence.core.scheduling import CadenceService, DueWorkflowScanner
    from cadence.execution import RecordExecutor, RecoverySweeper, RetryPolicy

    settings = settings or get_settings()
    engine = engine or create_database_engine(settings)
    workflows, records = create_stores(engine)
    emitter = create_event_emitter(settings, engine)

    executor = RecordExecutor(
        records,
        processor,
        emitter=emitter,
        policy=RetryPolicy.from_settings(settings),
        clock=clock,
        batch_size=settings.batch_size,
    )
    scanner = DueWorkflowScanner(workflows, executor, emitter=emitter, clock=clock)
    sweeper = RecoverySweeper(
        records,
        emitter=emitter,
        clock=clock,
        stuck_threshold=timedelta(seconds=settings.stuck_threshold_seconds),
    )

    return CadenceService(
        workflows=workflows,
        records=records,
        scanner=scanner,
        sweeper=sweeper,
        emitter=emitter,
        scan_backend=scan_backend or create_scheduler_backend(settings, "scan"),
        sweep_backend=sweep_backend or create_scheduler_backend(settings, "sweep"),
        scan_interval_seconds=settings.scan_interval_seconds,
        sweep_interval_seconds=settings.recovery_interval_seconds,
        drift_warning_ms=settings.drift_warning_ms,
    )


__all__ = [
    "create_database_engine",
    "create_stores",
    "create_scheduler_backend",
    "create_event_emitter",
    "create_service",
    "load_processor",
]
