"""Manual tick backend: ticks only when told to.

Used by tests and by the one-shot CLI commands. Pair it with a
:class:`~cadence.core.clock.ManualClock` to get deterministic drift
figures::

    clock = ManualClock()
    backend = ManualSchedulerBackend(clock=clock)
    backend.start(scanner.tick, interval_seconds=10)
    clock.advance(seconds=12)
    backend.fire()
    backend.health()["drift_ms"]    # 2000.0
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from cadence.core.clock import Clock, SystemClock
from cadence.core.logging import get_logger

from .protocol import BackendHealth, TickCallback, TickTracker

logger = get_logger(__name__)


class ManualSchedulerBackend:
    """Virtual tick source."""

    name = "manual"

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tracker = TickTracker(lambda: self._clock.now().timestamp())
        self._callback: TickCallback | None = None
        self._interval: float = 10.0
        self._started = False

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 10.0,
    ) -> None:
        self._callback = tick_callback
        self._interval = interval_seconds
        self._tracker.arm(interval_seconds)
        self._started = True
        logger.debug("backend_started", backend=self.name, interval_seconds=interval_seconds)

    def stop(self) -> None:
        self._started = False

    def fire(self, times: int = 1) -> int:
        """Run the tick callback *times* times from synchronous code.

        Returns:
            Number of ticks executed (0 when stopped)
        """
        fired = 0
        for _ in range(times):
            if not self._started or self._callback is None:
                break
            self._tracker.record(self._clock.now())
            asyncio.run(self._callback())
            fired += 1
        return fired

    async def fire_async(self) -> bool:
        """Run one tick from inside a running event loop."""
        if not self._started or self._callback is None:
            return False
        self._tracker.record(self._clock.now())
        await self._callback()
        return True

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        return self._tracker.snapshot(
            healthy=self._started,
            backend=self.name,
            interval_seconds=self._interval,
        )

    @property
    def is_running(self) -> bool:
        return self._started

    @property
    def tick_count(self) -> int:
        return self._tracker.tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._tracker.last_tick

    @property
    def tick_times(self) -> list[datetime]:
        return list(self._tracker.tick_times)
