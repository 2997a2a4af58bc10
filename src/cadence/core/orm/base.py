"""Declarative base and column types for cadence tables.

Uses SQLAlchemy 2.0 ``DeclarativeBase``. Timestamps go through
:class:`UTCDateTime` so engine code always sees aware UTC datetimes, even
on SQLite which has no timezone support.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, Text
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from cadence.core.clock import ensure_utc


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC.

    Bind and result conversion are symmetric, so a value read from a row
    compares equal when bound back into a ``WHERE`` clause. The sweeper's
    compare-and-swap on ``status_changed_at`` relies on that.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime.datetime | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        return ensure_utc(value).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime.datetime | None:
        if value is None:
            return None
        return ensure_utc(value)


class CadenceBase(DeclarativeBase):
    """Shared declarative base for every cadence table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Boolean,
        datetime.datetime: UTCDateTime,
        dict: JSON,
    }
