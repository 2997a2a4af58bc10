"""Scheduling package: due-workflow scanning and the tick loops that drive it.

Manifesto:
    A recurring workflow needs more than ``time.sleep()`` in a loop. Two
    engine instances must not run the same workflow at once, a crashed
    run must be recoverable, and a tick loop that falls behind must show
    up in health checks. The scheduling package does all three with a
    conditional status update as the only coordination primitive.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CADENCE SCHEDULING                                                           │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from cadence.core.factory import create_service                   │   │
│  │                                                                      │   │
│  │   service = create_service(settings, processor=handle_record)        │   │
│  │   service.workflows.create(WorkflowCreate(                           │   │
│  │       user_email="ops@example.com",                                  │   │
│  │       interval_seconds=60,                                           │   │
│  │   ), now=utc_now())                                                  │   │
│  │   service.start()                                                    │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Backends:                                                                    │
│  • Thread (default)                                                           │
│  • APScheduler (pip install cadence-engine[apscheduler])                      │
│  • Manual (tests, one-shot CLI commands)                                      │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running a workflow without ``claim_run`` succeeding first
    ✅ ``DueWorkflowScanner`` claims, runs and completes in that order
    ❌ Letting a tick exception kill the tick loop
    ✅ ``scanner.tick`` / ``sweeper.tick`` log and count failures

Tags:
    cadence, scheduling, beat-as-poller, pluggable-backends, thread, apscheduler
"""

from __future__ import annotations

# Health
from .health import ServiceHealth, check_service_health, check_tick_interval_stability

# Backends
from .manual_backend import ManualSchedulerBackend

# Protocol
from .protocol import BackendHealth, SchedulerBackend, TickCallback

# Scanner
from .scanner import DueWorkflowScanner, ScannerStats, ScanResult

# Service
from .service import CadenceService
from .thread_backend import ThreadSchedulerBackend

# Optional backend, imported lazily (requires the extra)
# APSchedulerBackend:  pip install cadence-engine[apscheduler]


def __getattr__(name: str):  # noqa: N807
    """Lazy import optional backends to avoid ImportError when extras are missing."""
    if name == "APSchedulerBackend":
        from .apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Protocol
    "SchedulerBackend",
    "BackendHealth",
    "TickCallback",
    # Backends
    "ThreadSchedulerBackend",
    "ManualSchedulerBackend",
    "APSchedulerBackend",
    # Scanner
    "DueWorkflowScanner",
    "ScanResult",
    "ScannerStats",
    # Service
    "CadenceService",
    # Health
    "ServiceHealth",
    "check_service_health",
    "check_tick_interval_stability",
]
