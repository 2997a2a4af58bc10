"""APScheduler-based tick backend.

Wraps APScheduler 3.x ``BackgroundScheduler`` for deployments that already
run APScheduler or want its misfire and coalescing behaviour.

Requires the ``[apscheduler]`` extra::

    pip install cadence-engine[apscheduler]
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any

from cadence.core.clock import utc_now
from cadence.core.logging import get_logger

from .protocol import BackendHealth, TickCallback, TickTracker

logger = get_logger(__name__)


def _require_apscheduler():
    """Validate that apscheduler is installed."""
    try:
        from apscheduler.schedulers.background import BackgroundScheduler

        return BackgroundScheduler
    except ImportError:
        raise ImportError(
            "APScheduler is required for APSchedulerBackend. "
            "Install it with: pip install cadence-engine[apscheduler]"
        ) from None


class APSchedulerBackend:
    """``SchedulerBackend`` on an APScheduler interval job.

    ``max_instances=1`` and ``coalesce=True`` keep ticks from overlapping:
    a tick that overruns the interval makes APScheduler skip, not stack,
    the next one.

    Example::

        >>> backend = APSchedulerBackend(job_id="cadence_scan")
        >>> backend.start(scanner.tick, interval_seconds=10.0)
        >>> backend.stop()
    """

    name: str = "apscheduler"

    def __init__(self, job_id: str = "cadence_tick") -> None:
        BackgroundScheduler = _require_apscheduler()  # noqa: N806
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._job_id = job_id
        self._tracker = TickTracker(time.monotonic)
        self._interval: float = 10.0

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 10.0,
    ) -> None:
        if self._scheduler.running:
            logger.warning("backend_already_started", backend=self.name, job_id=self._job_id)
            return

        self._interval = interval_seconds
        self._tracker.arm(interval_seconds)

        def _tick_wrapper() -> None:
            self._tracker.record(utc_now())
            try:
                asyncio.run(tick_callback())
            except Exception:
                logger.exception("tick_failed", backend=self.name, job_id=self._job_id)

        self._scheduler.add_job(
            _tick_wrapper,
            "interval",
            seconds=interval_seconds,
            id=self._job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("backend_started", backend=self.name, job_id=self._job_id, interval_seconds=interval_seconds)

    def stop(self) -> None:
        """Shut the scheduler down, waiting for the running tick."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("backend_stopped", backend=self.name, job_id=self._job_id)

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        running = bool(self._scheduler.running)
        return self._tracker.snapshot(
            healthy=running,
            backend=self.name,
            interval_seconds=self._interval,
            scheduled_jobs=len(self._scheduler.get_jobs()) if running else 0,
        )

    @property
    def is_running(self) -> bool:
        return bool(self._scheduler.running)

    @property
    def tick_count(self) -> int:
        return self._tracker.tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._tracker.last_tick

    @property
    def tick_times(self) -> list[datetime]:
        return list(self._tracker.tick_times)
