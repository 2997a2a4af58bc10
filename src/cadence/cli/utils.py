"""
CLI utility helpers — output formatting and store access.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table
from sqlalchemy.engine import Engine

from cadence.core.errors import CadenceError
from cadence.core.factory import create_database_engine, create_stores
from cadence.core.settings import CadenceSettings, get_settings
from cadence.core.stores.sql import SQLRecordStore, SQLWorkflowStore

console = Console()
err_console = Console(stderr=True)


# ── Store access ─────────────────────────────────────────────────────────


@dataclass
class CliContext:
    """Settings, engine and stores for one CLI invocation."""

    settings: CadenceSettings
    engine: Engine
    workflows: SQLWorkflowStore
    records: SQLRecordStore


def make_context(database: str | None = None) -> CliContext:
    """Open the configured database, creating tables if needed.

    ``--database`` overrides ``CADENCE_DATABASE_URL`` for this command.
    """
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_url": database})
    engine = create_database_engine(settings)
    workflows, records = create_stores(engine)
    return CliContext(settings=settings, engine=engine, workflows=workflows, records=records)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn engine and validation errors into a red message and exit code 1."""
    try:
        yield
    except CadenceError as e:
        fail(f"{e.category.value}: {e.message}")
    except PydanticValidationError as e:
        fail("; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()))


def fail(message: str) -> None:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_plain(v) for v in value]
    return value


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        data = obj.to_dict()
    elif hasattr(obj, "model_dump"):
        data = obj.model_dump()
    elif hasattr(obj, "__dataclass_fields__"):
        data = asdict(obj)
    elif isinstance(obj, dict):
        data = obj
    else:
        data = {"value": str(obj)}
    return _plain(data)


def output_item(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render one object as key/value pairs or JSON."""
    data = _to_dict(obj)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def output_items(items: list[Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of objects as a Rich table or JSON array."""
    rows = [_to_dict(item) for item in items]
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)
