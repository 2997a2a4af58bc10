"""Tick backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TICK BACKEND PROTOCOL                                                        │
│                                                                               │
│  The engine runs "beat-as-poller": a backend decides WHEN a tick happens,    │
│  the scanner or sweeper decides WHAT a tick does.                            │
│                                                                               │
│   ┌─────────────────┐       tick()       ┌──────────────────────┐            │
│   │  Thread Backend │ ─────────────────► │  DueWorkflowScanner  │            │
│   │  (default)      │                    │  .tick()             │            │
│   └─────────────────┘                    └──────────────────────┘            │
│                                                                               │
│   ┌─────────────────┐       tick()       ┌──────────────────────┐            │
│   │  APScheduler    │ ─────────────────► │  RecoverySweeper     │            │
│   │  Backend        │                    │  .tick()             │            │
│   └─────────────────┘                    └──────────────────────┘            │
│                                                                               │
│   ┌─────────────────┐                                                         │
│   │  Manual Backend │  fire() on demand — deterministic tests                │
│   └─────────────────┘                                                         │
│                                                                               │
│  The service owns two backends: one for scans, one for sweeps.               │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for pluggable tick backends.

    A backend is responsible ONLY for timing — calling the tick callback
    at the specified interval.

    Implementations:
        - ThreadSchedulerBackend: stdlib threading (default)
        - APSchedulerBackend: APScheduler 3.x (requires [apscheduler] extra)
        - ManualSchedulerBackend: ticks only when ``fire()`` is called
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 10.0,
    ) -> None:
        """Start calling *tick_callback* every *interval_seconds*."""
        ...

    def stop(self) -> None:
        """Stop ticking. Waits for the current tick to complete."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status.

        Returns:
            dict with at least:
                - healthy: bool — whether backend is running
                - backend: str — backend name
                - tick_count: int — number of ticks executed
                - last_tick: str | None — ISO timestamp of last tick
                - drift_ms: float | None — lateness of the last tick
        """
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    drift_ms: float | None = None
    max_drift_ms: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "drift_ms": self.drift_ms,
            "max_drift_ms": self.max_drift_ms,
            **self.extra,
        }


class TickTracker:
    """Tick counting and drift measurement shared by the backends.

    Drift is how late a tick fired relative to ``previous + interval``,
    measured on the monotonic clock. Early ticks count as zero drift.
    """

    def __init__(self, monotonic: Callable[[], float]) -> None:
        self._monotonic = monotonic
        self.tick_count = 0
        self.last_tick: datetime | None = None
        self.last_drift_ms: float | None = None
        self.max_drift_ms: float | None = None
        self.tick_times: list[datetime] = []
        self._expected: float | None = None
        self._interval = 0.0

    def arm(self, interval_seconds: float) -> None:
        self._interval = interval_seconds
        self._expected = self._monotonic() + interval_seconds

    def record(self, at: datetime) -> None:
        now = self._monotonic()
        if self._expected is not None:
            drift = max(0.0, (now - self._expected) * 1000.0)
            self.last_drift_ms = drift
            self.max_drift_ms = drift if self.max_drift_ms is None else max(self.max_drift_ms, drift)
        self._expected = now + self._interval
        self.tick_count += 1
        self.last_tick = at
        self.tick_times.append(at)
        del self.tick_times[:-50]

    def snapshot(self, *, healthy: bool, backend: str, **extra: Any) -> BackendHealth:
        return BackendHealth(
            healthy=healthy,
            backend=backend,
            tick_count=self.tick_count,
            last_tick=self.last_tick,
            drift_ms=self.last_drift_ms,
            max_drift_ms=self.max_drift_ms,
            extra=extra,
        )


__all__ = ["TickCallback", "SchedulerBackend", "BackendHealth", "TickTracker"]
