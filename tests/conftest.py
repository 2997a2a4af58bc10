"""
Shared pytest fixtures and configuration for cadence tests.

This module provides:
- A ManualClock pinned to a fixed instant
- In-memory and SQLite-backed stores
- An EventEmitter wired to an EventCollector
- Small builders for workflows and records

Usage:
    Fixtures are auto-discovered by pytest::

        def test_claim(record_store, clock):
            record_id = record_store.insert({"n": 1}, now=clock.now())
"""

import os
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog

from cadence.core.clock import ManualClock
from cadence.core.events import EventEmitter
from cadence.core.events.observers import EventCollector
from cadence.core.models import Workflow, WorkflowCreate
from cadence.core.orm import create_cadence_engine, init_db
from cadence.core.settings import clear_settings_cache
from cadence.core.stores import InMemoryRecordStore, InMemoryWorkflowStore
from cadence.core.stores.sql import SQLRecordStore, SQLWorkflowStore

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark everything without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clean_settings_cache(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Isolate every test from CADENCE_* variables and any local .env."""
    for key in list(os.environ):
        if key.startswith("CADENCE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any configure_logging() a test (or CLI command) performed."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def workflow_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite engine with the cadence schema."""
    engine = create_cadence_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path: Path):
    """File-backed SQLite engine (separate connections per thread)."""
    engine = create_cadence_engine(f"sqlite:///{tmp_path / 'cadence.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_workflow_store(sqlite_engine) -> SQLWorkflowStore:
    return SQLWorkflowStore(sqlite_engine)


@pytest.fixture
def sql_record_store(sqlite_engine) -> SQLRecordStore:
    return SQLRecordStore(sqlite_engine)


@pytest.fixture(params=["memory", "sqlite"])
def stores(request, sqlite_engine):
    """(workflow_store, record_store) pair for both implementations."""
    if request.param == "memory":
        return InMemoryWorkflowStore(), InMemoryRecordStore()
    return SQLWorkflowStore(sqlite_engine), SQLRecordStore(sqlite_engine)


# =============================================================================
# Events
# =============================================================================


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()


@pytest.fixture
def emitter(collector: EventCollector) -> Generator[EventEmitter, None, None]:
    """Emitter delivering every event to ``collector``."""
    em = EventEmitter(buffer_size=1000)
    em.subscribe(collector)
    yield em
    em.close()


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_workflow(clock: ManualClock) -> Callable[..., Workflow]:
    """Create a workflow in the given store.

    Defaults: interval 60s, starting_time one hour before ``T0``.
    """

    def _make(store, *, interval_seconds: int = 60, starting_time: datetime | None = None, active: bool = True):
        spec = WorkflowCreate(
            user_email="ops@example.com",
            interval_seconds=interval_seconds,
            starting_time=starting_time or T0.replace(hour=8),
            is_active=active,
        )
        return store.create(spec, now=clock.now())

    return _make
