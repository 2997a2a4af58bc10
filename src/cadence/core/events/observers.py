"""Stock lifecycle observers.

``LoggingObserver``     one structlog line per event
``LifecycleLogWriter``  persists events to the ``lifecycle_logs`` table
``EventCollector``      keeps events in memory (tests, diagnostics)

Observers run on the emitter's dispatcher thread. Exceptions they raise
are caught and counted by the emitter.
"""

from __future__ import annotations

import threading
from typing import Any

from sqlalchemy import insert
from sqlalchemy.engine import Engine

from cadence.core.logging import get_logger
from cadence.core.models import EventType, LifecycleEvent
from cadence.core.orm.tables import LifecycleLogTable

__all__ = ["LoggingObserver", "LifecycleLogWriter", "EventCollector"]

_WARN_EVENTS = {EventType.FAILED.value, EventType.DEAD_LETTERED.value, EventType.RECORD_RECOVERED.value}


class LoggingObserver:
    """Write each lifecycle event to the structured log."""

    def __init__(self, logger_name: str = "cadence.lifecycle") -> None:
        self._logger = get_logger(logger_name)

    def __call__(self, event: LifecycleEvent) -> None:
        log = self._logger.warning if event.event_type in _WARN_EVENTS else self._logger.info
        log(
            event.event_type,
            workflow_id=event.workflow_id,
            record_id=event.record_id,
            status=event.status,
            detail=event.message or None,
        )


class LifecycleLogWriter:
    """Persist lifecycle events as ``lifecycle_logs`` rows."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def __call__(self, event: LifecycleEvent) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                insert(LifecycleLogTable).values(
                    workflow_id=event.workflow_id,
                    record_id=event.record_id,
                    event_type=event.event_type,
                    status=event.status,
                    message=event.message,
                    created_at=event.timestamp,
                )
            )


class EventCollector:
    """Thread-safe in-memory sink."""

    def __init__(self) -> None:
        self._events: list[LifecycleEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: LifecycleEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[LifecycleEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: Any) -> list[LifecycleEvent]:
        wanted = str(getattr(event_type, "value", event_type))
        return [e for e in self.events if e.event_type == wanted]

    def for_record(self, record_id: int) -> list[LifecycleEvent]:
        return [e for e in self.events if e.record_id == record_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
