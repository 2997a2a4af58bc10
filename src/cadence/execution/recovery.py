"""Recovery Sweeper — returns stuck ``processing`` records to ``pending``.

WHY
───
An executor that crashes, is killed, or stalls after claiming a record
leaves it in ``processing`` forever; nothing else ever selects that
status. The sweeper is the liveness guarantee: any record whose
``status_changed_at`` is older than the stuck threshold is put back into
``pending`` with one attempt charged, so it is picked up again (and
eventually dead-lettered if it keeps stranding executors).

ARCHITECTURE
────────────
::

    RecoverySweeper(records, emitter, stuck_threshold)
      ├── .sweep_once()   ─ one pass, returns SweepResult
      ├── .tick()         ─ async wrapper for a SchedulerBackend
      └── .stats          ─ cumulative counters

    per stuck record:
      UPDATE records SET status='pending', attempts=attempts+1, ...
       WHERE id=:id AND status='processing'
         AND status_changed_at=:observed

    A live executor that completes first moves status_changed_at, so the
    sweeper's update matches zero rows and the record is left alone.

BEST PRACTICES
──────────────
- Set ``stuck_threshold`` above the worst-case processing time of one
  record; a too-small threshold double-processes slow records.
- The sweep is idempotent. Running several sweepers against one database
  is safe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from cadence.core import state_machine
from cadence.core.clock import Clock, SystemClock
from cadence.core.events import EventEmitter, EventType
from cadence.core.logging import get_logger
from cadence.core.models import RecordStatus
from cadence.core.stores.protocol import RecordStore

logger = get_logger(__name__)

DEFAULT_STUCK_THRESHOLD = timedelta(seconds=300)
DEFAULT_SWEEP_LIMIT = 500


@dataclass
class SweepResult:
    """Outcome of one sweep pass."""

    examined: int = 0
    recovered: int = 0
    skipped: int = 0
    record_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"examined": self.examined, "recovered": self.recovered, "skipped": self.skipped}


@dataclass
class SweeperStats:
    """Cumulative sweeper counters."""

    sweeps: int = 0
    recovered: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "sweeps": self.sweeps,
            "recovered": self.recovered,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class RecoverySweeper:
    """Periodic stuck-record recovery pass."""

    def __init__(
        self,
        records: RecordStore,
        *,
        emitter: EventEmitter | None = None,
        clock: Clock | None = None,
        stuck_threshold: timedelta = DEFAULT_STUCK_THRESHOLD,
        limit: int = DEFAULT_SWEEP_LIMIT,
    ) -> None:
        if stuck_threshold <= timedelta(0):
            raise ValueError("stuck_threshold must be positive")
        self.records = records
        self.emitter = emitter
        self.clock = clock or SystemClock()
        self.stuck_threshold = stuck_threshold
        self.limit = limit
        self.stats = SweeperStats()

    def sweep_once(self) -> SweepResult:
        """Recover every record stuck longer than the threshold.

        Raises:
            StoreError: the record store failed; the pass is abandoned
        """
        now = self.clock.now()
        stuck = self.records.list_stuck(now - self.stuck_threshold, self.limit)
        result = SweepResult(examined=len(stuck))

        for record in stuck:
            change = state_machine.recover(record.status_changed_at, self.clock.now())
            if not self.records.transition(record.id, change):
                result.skipped += 1
                logger.debug("recovery_lost", record_id=record.id)
                continue

            result.recovered += 1
            result.record_ids.append(record.id)
            logger.warning(
                "record_recovered",
                record_id=record.id,
                workflow_id=record.workflow_id,
                attempts=record.processing_attempts + 1,
                stuck_since=record.status_changed_at.isoformat() if record.status_changed_at else None,
            )
            if self.emitter is not None:
                self.emitter.emit_lifecycle(
                    EventType.RECORD_RECOVERED.value,
                    record.workflow_id,
                    record.id,
                    RecordStatus.PENDING.value,
                    state_machine.RECOVERED_MESSAGE,
                    timestamp=self.clock.now(),
                )

        self.stats.sweeps += 1
        self.stats.recovered += result.recovered
        self.stats.skipped += result.skipped
        if result.examined:
            logger.info("sweep_completed", **result.to_dict())
        return result

    async def tick(self) -> None:
        """Tick callback: run a sweep, log and count any failure."""
        try:
            self.sweep_once()
        except Exception:
            self.stats.errors += 1
            logger.exception("sweep_failed")


__all__ = ["RecoverySweeper", "SweepResult", "SweeperStats", "DEFAULT_STUCK_THRESHOLD"]
