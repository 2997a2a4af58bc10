"""Table definitions — workflows, records, lifecycle logs.

Tags:
    cadence, orm, sqlalchemy, tables
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cadence.core.orm.base import CadenceBase, UTCDateTime


class WorkflowTable(CadenceBase):
    __tablename__ = "workflows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_email: Mapped[str] = mapped_column(Text, nullable=False)
    interval_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    workflow_starting_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)
    last_execution_time: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    current_status: Mapped[str] = mapped_column(String(16), nullable=False, default="initialized")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (Index("ix_workflows_scan", "is_active", "current_status"),)


class RecordTable(CadenceBase):
    __tablename__ = "records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    workflow_id: Mapped[int | None] = mapped_column(Integer)
    processed_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    status_changed_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    error_message: Mapped[str | None] = mapped_column(Text)
    processing_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_records_status_created", "status", "created_at"),
        Index("ix_records_status_changed", "status", "status_changed_at"),
    )


class LifecycleLogTable(CadenceBase):
    __tablename__ = "lifecycle_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workflow_id: Mapped[int | None] = mapped_column(Integer)
    record_id: Mapped[int | None] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)


__all__ = ["WorkflowTable", "RecordTable", "LifecycleLogTable"]
