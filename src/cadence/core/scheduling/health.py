"""Engine health and tick drift.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ENGINE HEALTH                                                                │
│                                                                               │
│  Checks:                                                                      │
│  1. Backends: are the scan and sweep tick loops running?                     │
│  2. Drift: how late did the last tick fire relative to its interval?         │
│  3. Store: can record counts and workflow states be read?                    │
│  4. Stranded runs: workflows sitting in ``running``.                         │
│  5. Events: is the emitter dropping events?                                  │
│                                                                               │
│   expected tick ───────┐                                                      │
│                        │◄── drift_ms ──►│                                     │
│                        ▼                 ▼                                    │
│   ─────────────────────┼─────────────────┼──────────► time                    │
│                                      actual tick                              │
│                                                                               │
│  Drift above ``drift_warning_ms`` is a warning, not a failure: the engine    │
│  tolerates late ticks, it just runs workflows later than their interval.     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cadence.core.errors import StoreError
from cadence.core.logging import get_logger
from cadence.core.models import WorkflowStatus

if TYPE_CHECKING:
    from .service import CadenceService

logger = get_logger(__name__)


@dataclass
class ServiceHealth:
    """Complete engine health report."""

    healthy: bool
    running: bool = False
    checks: dict[str, bool] = field(default_factory=dict)
    backends: dict[str, dict[str, Any]] = field(default_factory=dict)
    scanner: dict[str, Any] = field(default_factory=dict)
    sweeper: dict[str, Any] = field(default_factory=dict)
    events: dict[str, int] = field(default_factory=dict)
    records: dict[str, int] = field(default_factory=dict)
    running_workflows: list[int] = field(default_factory=list)
    drift_ms: float | None = None
    drift_warning: bool = False
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "running": self.running,
            "checks": self.checks,
            "backends": self.backends,
            "scanner": self.scanner,
            "sweeper": self.sweeper,
            "events": self.events,
            "records": self.records,
            "running_workflows": self.running_workflows,
            "drift_ms": self.drift_ms,
            "drift_warning": self.drift_warning,
            "warnings": self.warnings,
            "errors": self.errors,
        }


def check_service_health(service: CadenceService, drift_warning_ms: float = 1000.0) -> ServiceHealth:
    """Build a :class:`ServiceHealth` for *service*.

    Args:
        service: Engine service to inspect
        drift_warning_ms: Tick lateness above which a warning is raised

    Returns:
        ServiceHealth; ``healthy`` is False when stopped or on errors,
        never for warnings alone
    """
    report = ServiceHealth(healthy=True, running=service.is_running)

    # === Backends ===
    drifts: list[float] = []
    for role, backend in (("scan", service.scan_backend), ("sweep", service.sweep_backend)):
        info = backend.health()
        tick_times = getattr(backend, "tick_times", None)
        if tick_times:
            info["stability"] = check_tick_interval_stability(tick_times, float(info.get("interval_seconds", 10.0)))
        report.backends[role] = info
        alive = bool(info.get("healthy", False))
        report.checks[f"{role}_backend_running"] = alive
        if service.is_running and not alive:
            report.errors.append(f"{role} backend is not running")
        if info.get("drift_ms") is not None:
            drifts.append(float(info["drift_ms"]))

    # === Drift ===
    if drifts:
        report.drift_ms = max(drifts)
        report.drift_warning = report.drift_ms > drift_warning_ms
        report.checks["drift_ok"] = not report.drift_warning
        if report.drift_warning:
            report.warnings.append(f"Tick drift: {report.drift_ms:.0f}ms (threshold: {drift_warning_ms:.0f}ms)")

    # === Stats ===
    report.scanner = service.scanner.stats.to_dict()
    report.sweeper = service.sweeper.stats.to_dict()
    report.events = service.emitter.stats()
    if report.events.get("dropped"):
        report.warnings.append(f"Event emitter dropped {report.events['dropped']} event(s)")

    # === Store ===
    try:
        report.records = service.records.count_by_status()
        report.running_workflows = [
            w.id for w in service.workflows.list_all() if w.current_status == WorkflowStatus.RUNNING
        ]
        report.checks["store_reachable"] = True
    except StoreError as e:
        logger.warning("health_store_check_failed", error=str(e))
        report.checks["store_reachable"] = False
        report.errors.append(f"Store check failed: {e}")

    if report.running_workflows and not service.is_running:
        report.warnings.append(
            f"Workflow(s) {report.running_workflows} are running with no engine active; reset if stranded"
        )

    report.healthy = service.is_running and not report.errors
    return report


def check_tick_interval_stability(
    tick_times: list[datetime],
    expected_interval: float = 10.0,
    tolerance: float = 0.5,
) -> dict[str, Any]:
    """Analyze tick interval stability.

    Args:
        tick_times: Tick timestamps, oldest first
        expected_interval: Expected interval in seconds
        tolerance: Acceptable deviation as fraction (0.5 = 50%)

    Returns:
        Analysis result with jitter and stability metrics
    """
    if len(tick_times) < 2:
        return {
            "stable": True,
            "samples": len(tick_times),
            "message": "Insufficient data",
        }

    intervals = [(b - a).total_seconds() for a, b in zip(tick_times, tick_times[1:])]
    avg = sum(intervals) / len(intervals)
    variance = sum((x - avg) ** 2 for x in intervals) / len(intervals)
    std_dev = variance**0.5
    max_deviation = max(abs(x - expected_interval) for x in intervals)

    return {
        "stable": max_deviation <= expected_interval * tolerance,
        "samples": len(intervals),
        "avg_interval": avg,
        "expected_interval": expected_interval,
        "std_dev": std_dev,
        "jitter_pct": (std_dev / expected_interval) * 100,
        "max_deviation": max_deviation,
        "min_interval": min(intervals),
        "max_interval": max(intervals),
    }


__all__ = ["ServiceHealth", "check_service_health", "check_tick_interval_stability"]
