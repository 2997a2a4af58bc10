"""Threading-based tick backend.

This is the DEFAULT backend. It needs nothing beyond the standard
library.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                               │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   Daemon Thread (loop)                                                        │
│      while not stop_event.wait(interval):                                     │
│          tracker.record(now)          tick_count, last_tick, drift            │
│          asyncio.run(tick_callback())                                         │
│                                                                               │
│   stop()                                                                      │
│      stop_event.set()                                                         │
│      thread.join(timeout=5.0)                                                 │
│                                                                               │
│  A tick that runs longer than the interval delays the next one; the          │
│  delay shows up as drift in health().                                         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime
from typing import Any

from cadence.core.clock import utc_now
from cadence.core.logging import get_logger

from .protocol import BackendHealth, TickCallback, TickTracker

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Daemon-thread tick loop.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>>
        >>> async def my_tick():
        ...     print("Tick!")
        ...
        >>> backend.start(my_tick, interval_seconds=5.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, thread_name: str = "cadence-ticker") -> None:
        self._thread_name = thread_name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tracker = TickTracker(time.monotonic)
        self._interval: float = 10.0
        self._started = False
        self._lock = threading.Lock()

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 10.0,
    ) -> None:
        if self._started:
            logger.warning("backend_already_started", backend=self.name, thread=self._thread_name)
            return
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._interval = interval_seconds
        self._stop_event.clear()
        self._tracker.arm(interval_seconds)

        def _loop() -> None:
            logger.info("backend_started", backend=self.name, thread=self._thread_name, interval_seconds=interval_seconds)
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tracker.record(utc_now())

                try:
                    asyncio.run(tick_callback())
                except Exception:
                    logger.exception("tick_failed", backend=self.name, thread=self._thread_name)

            logger.info("backend_stopped", backend=self.name, thread=self._thread_name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=self._thread_name)
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop, waiting up to 5 seconds for the current tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("backend_stop_timeout", backend=self.name, thread=self._thread_name)

        self._started = False

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        with self._lock:
            return self._tracker.snapshot(
                healthy=self.is_running,
                backend=self.name,
                interval_seconds=self._interval,
            )

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tracker.tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._tracker.last_tick

    @property
    def tick_times(self) -> list[datetime]:
        with self._lock:
            return list(self._tracker.tick_times)
