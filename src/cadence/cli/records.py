"""
CLI: ``cadence records`` — ingestion and inspection.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from cadence.cli.utils import fail, handle_errors, make_context, output_item, output_items
from cadence.core.clock import utc_now
from cadence.core.models import RecordStatus

app = typer.Typer(no_args_is_help=True)


def _load_payloads(payload: str | None, file: Path | None) -> list[dict]:
    if (payload is None) == (file is None):
        fail("Give exactly one of PAYLOAD or --file")
    if file is not None:
        # One JSON object per line
        lines = [line for line in file.read_text(encoding="utf-8").splitlines() if line.strip()]
    else:
        lines = [payload]

    payloads = []
    for n, line in enumerate(lines, start=1):
        try:
            value = json.loads(line)
        except json.JSONDecodeError as e:
            fail(f"Line {n}: invalid JSON ({e.msg})")
        if not isinstance(value, dict):
            fail(f"Line {n}: payload must be a JSON object")
        payloads.append(value)
    return payloads


@app.command("ingest")
def ingest(
    payload: str | None = typer.Argument(None, help="JSON object"),
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, dir_okay=False, help="JSON-lines file"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Insert records as ``pending``."""
    payloads = _load_payloads(payload, file)
    with handle_errors():
        ctx = make_context(database)
        ids = [ctx.records.insert(p, now=utc_now()) for p in payloads]
    output_item({"ingested": len(ids), "record_ids": ids}, as_json=json_out, title="Records Ingested")


@app.command("list")
def list_records(
    status: RecordStatus | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(50, "--limit", "-n", min=1),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List records, oldest first."""
    with handle_errors():
        ctx = make_context(database)
        records = ctx.records.list(status=status, limit=limit)
    output_items(records, as_json=json_out, title="Records")


@app.command("show")
def show_record(
    record_id: int = typer.Argument(..., help="Record ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one record."""
    with handle_errors():
        ctx = make_context(database)
        record = ctx.records.get(record_id)
    if record is None:
        fail(f"Record {record_id} not found")
    output_item(record, as_json=json_out, title=f"Record: {record_id}")


@app.command("stats")
def stats(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Record counts by status."""
    with handle_errors():
        ctx = make_context(database)
        counts = ctx.records.count_by_status()
    output_item(counts, as_json=json_out, title="Record Stats")
