"""
Bounded, non-blocking lifecycle event emitter.

Manifesto:
    A slow or broken observer (dashboard stream, log writer) must never
    delay or fail a record transition. ``emit`` therefore only does a
    ``put_nowait`` into a bounded queue; a daemon dispatcher thread does
    the fan-out. When the queue is full the event is dropped and counted.

Usage::

    emitter = EventEmitter(buffer_size=1000)
    emitter.subscribe(print)                          # every event
    emitter.subscribe(on_dead, pattern="dead_lettered")
    emitter.emit_lifecycle("completed", workflow_id=1, record_id=7, status="completed")
    emitter.flush()
    emitter.close()

Tags:
    cadence, events, pub-sub, backpressure, threading
"""

from __future__ import annotations

import queue
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from cadence.core.logging import get_logger
from cadence.core.models import LifecycleEvent

logger = get_logger(__name__)

__all__ = ["EventEmitter", "Observer", "Subscription"]

Observer = Callable[[LifecycleEvent], Any]

_STOP = object()


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    pattern: str
    observer: Observer


class EventEmitter:
    """In-process publish/subscribe with a bounded buffer.

    The dispatcher thread starts lazily on the first ``emit`` (or
    explicitly via :meth:`start`), so constructing an emitter is free.
    """

    def __init__(self, buffer_size: int = 1000, name: str = "cadence-events") -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=buffer_size)
        self._subscriptions: dict[str, Subscription] = {}
        self._sub_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._closed = False
        self._name = name
        self._stats_lock = threading.Lock()

        self.emitted = 0
        self.dropped = 0
        self.delivered = 0
        self.observer_errors = 0

    # === Subscriptions ===

    def subscribe(self, observer: Observer, pattern: str = "*") -> str:
        """Register *observer* for events whose type matches *pattern*.

        Returns:
            Subscription ID for :meth:`unsubscribe`
        """
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        with self._sub_lock:
            self._subscriptions[sub_id] = Subscription(id=sub_id, pattern=pattern, observer=observer)
        return sub_id

    def unsubscribe(self, subscription_id: str) -> None:
        with self._sub_lock:
            self._subscriptions.pop(subscription_id, None)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # === Publishing ===

    def emit(self, event: LifecycleEvent) -> bool:
        """Queue *event* for delivery without blocking.

        Returns:
            False if the event was dropped (buffer full or emitter closed)
        """
        try:
            # Held across the closed check and the put so nothing lands behind _STOP
            with self._publish_lock:
                if self._closed:
                    return False
                self._ensure_started()
                self._queue.put_nowait(event)
        except queue.Full:
            with self._stats_lock:
                self.dropped += 1
                dropped = self.dropped
            if dropped == 1 or dropped % 100 == 0:
                logger.warning("event_dropped", event_type=event.event_type, dropped_total=dropped)
            return False
        with self._stats_lock:
            self.emitted += 1
        return True

    def emit_lifecycle(
        self,
        event_type: str,
        workflow_id: int | None,
        record_id: int | None,
        status: str,
        message: str = "",
        *,
        timestamp: datetime | None = None,
    ) -> bool:
        """Build a :class:`LifecycleEvent` and :meth:`emit` it.

        *timestamp* defaults to the current UTC time; engine components pass
        their own clock reading so events line up with record timestamps.
        """
        event = LifecycleEvent(
            event_type=str(getattr(event_type, "value", event_type)),
            workflow_id=workflow_id,
            record_id=record_id,
            status=str(getattr(status, "value", status)),
            message=message,
        )
        if timestamp is not None:
            event = replace(event, timestamp=timestamp)
        return self.emit(event)

    # === Lifecycle ===

    def start(self) -> None:
        self._ensure_started()

    def _ensure_started(self) -> None:
        if self._thread is not None:
            return
        with self._start_lock:
            if self._thread is None:
                thread = threading.Thread(target=self._dispatch_loop, daemon=True, name=self._name)
                thread.start()
                self._thread = thread

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every queued event has been delivered.

        Returns:
            True if the queue drained within *timeout*
        """
        if self._thread is None:
            return True
        done = threading.Event()

        def _wait() -> None:
            self._queue.join()
            done.set()

        threading.Thread(target=_wait, daemon=True).start()
        return done.wait(timeout)

    def close(self, timeout: float = 5.0) -> None:
        """Deliver what is queued, then stop the dispatcher."""
        with self._publish_lock:
            if self._closed:
                return
            self._closed = True
        if self._thread is None:
            return
        self.flush(timeout)
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("event_dispatcher_stop_timeout")
            return
        self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stats(self) -> dict[str, int]:
        return {
            "emitted": self.emitted,
            "dropped": self.dropped,
            "delivered": self.delivered,
            "observer_errors": self.observer_errors,
            "queued": self._queue.qsize(),
            "subscriptions": self.subscription_count,
        }

    # === Dispatch ===

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, event: LifecycleEvent) -> None:
        with self._sub_lock:
            targets = [s for s in self._subscriptions.values() if event.matches(s.pattern)]

        for sub in targets:
            try:
                sub.observer(event)
                self.delivered += 1
            except Exception as e:
                self.observer_errors += 1
                logger.warning(
                    "event_observer_error",
                    subscription_id=sub.id,
                    event_type=event.event_type,
                    error=str(e),
                )
