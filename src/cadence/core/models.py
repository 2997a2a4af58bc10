"""
Domain models: workflows, records and lifecycle events.

Rows come back from both store implementations as these dataclasses, so
engine code never touches ORM objects. ``WorkflowCreate`` is the
validated configuration-surface input.

Tags:
    cadence, models, dataclasses, pydantic, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cadence.core.clock import ensure_utc, utc_now


class WorkflowStatus(str, Enum):
    """Trigger state of a workflow."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    IDLE = "idle"
    DISABLED = "disabled"


# Statuses a scanner may claim a run from.
CLAIMABLE_WORKFLOW_STATUSES = (WorkflowStatus.IDLE, WorkflowStatus.INITIALIZED)


class RecordStatus(str, Enum):
    """Processing state of a record."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"


class EventType(str, Enum):
    """Lifecycle event types emitted by the engine."""

    PROCESSING_START = "processing_start"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"
    RECORD_RECOVERED = "record_recovered"
    REQUEUED = "requeued"
    WORKFLOW_RUN_STARTED = "workflow_run_started"
    WORKFLOW_RUN_FINISHED = "workflow_run_finished"


# ---------------------------------------------------------------------------
# workflows
# ---------------------------------------------------------------------------


@dataclass
class Workflow:
    """Recurring trigger definition (``workflows`` row)."""

    id: int
    user_email: str
    interval_seconds: int
    starting_time: datetime
    last_execution_time: datetime | None = None
    current_status: WorkflowStatus = WorkflowStatus.INITIALIZED
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    def is_due(self, now: datetime) -> bool:
        """Whether a scanner should try to start a run at *now*."""
        if not self.is_active or self.current_status not in CLAIMABLE_WORKFLOW_STATUSES:
            return False
        if self.last_execution_time is None:
            return True
        return now - self.last_execution_time >= self.interval


class WorkflowCreate(BaseModel):
    """Validated input for creating a workflow."""

    model_config = ConfigDict(frozen=True)

    user_email: str = Field(min_length=3)
    interval_seconds: int = Field(gt=0)
    starting_time: datetime = Field(default_factory=utc_now)
    is_active: bool = True

    @field_validator("user_email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("user_email must contain '@'")
        return value.strip()

    @field_validator("starting_time")
    @classmethod
    def _normalize_starting_time(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ---------------------------------------------------------------------------
# records
# ---------------------------------------------------------------------------


@dataclass
class Record:
    """One unit of ingested work (``records`` row).

    ``status_changed_at`` moves on every transition and drives stuck
    detection. ``processed_at`` moves on the claim and on each outcome and
    drives retry backoff.
    """

    id: int
    payload: dict[str, Any]
    status: RecordStatus = RecordStatus.PENDING
    workflow_id: int | None = None
    processed_at: datetime | None = None
    status_changed_at: datetime | None = None
    error_message: str | None = None
    processing_attempts: int = 0
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RecordStatus.COMPLETED, RecordStatus.DEAD)


# ---------------------------------------------------------------------------
# lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LifecycleEvent:
    """Ephemeral notification emitted at each transition."""

    event_type: str
    workflow_id: int | None
    record_id: int | None
    status: str
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def matches(self, pattern: str) -> bool:
        """Check if the event type matches a subscription pattern.

        Examples:
            - ``*`` matches everything
            - ``workflow_run_*`` matches both workflow run events
            - ``completed`` matches exactly ``completed``
        """
        if pattern == "*":
            return True
        if pattern.endswith("*"):
            return self.event_type.startswith(pattern[:-1])
        return self.event_type == pattern

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "workflow_id": self.workflow_id,
            "record_id": self.record_id,
            "status": self.status,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


__all__ = [
    "WorkflowStatus",
    "RecordStatus",
    "EventType",
    "CLAIMABLE_WORKFLOW_STATUSES",
    "Workflow",
    "WorkflowCreate",
    "Record",
    "LifecycleEvent",
]
