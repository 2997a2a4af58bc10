"""
CLI: ``cadence engine`` — run the scanner and sweeper.
"""

from __future__ import annotations

import sys
import time
from datetime import timedelta

import typer

from cadence.cli.utils import console, handle_errors, make_context, output_item
from cadence.core.factory import create_event_emitter, create_service, load_processor
from cadence.core.logging import configure_logging
from cadence.core.scheduling import ManualSchedulerBackend
from cadence.execution import RecoverySweeper

app = typer.Typer(no_args_is_help=True)

_PROCESSOR_HELP = "Record processor as 'package.module:function'"


@app.command("run")
def run(
    processor: str = typer.Option(..., "--processor", "-p", help=_PROCESSOR_HELP),
    duration: float | None = typer.Option(None, "--duration", help="Stop after N seconds (default: until Ctrl-C)"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Start the engine and block until interrupted."""
    with handle_errors():
        ctx = make_context(database)
        configure_logging(
            level=ctx.settings.log_level,
            json_format=ctx.settings.log_format == "json",
            stream=sys.stderr,
        )
        service = create_service(ctx.settings, processor=load_processor(processor), engine=ctx.engine)

    service.start()
    console.print(
        f"[green]cadence running[/green] (scan every {service.scan_interval}s, "
        f"sweep every {service.sweep_interval}s) — Ctrl-C to stop"
    )
    deadline = time.monotonic() + duration if duration is not None else None
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.2)
    except KeyboardInterrupt:
        console.print("[yellow]Stopping...[/yellow]")
    finally:
        service.close()


@app.command("scan")
def scan(
    processor: str = typer.Option(..., "--processor", "-p", help=_PROCESSOR_HELP),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one scan pass now."""
    with handle_errors():
        ctx = make_context(database)
        service = create_service(
            ctx.settings,
            processor=load_processor(processor),
            engine=ctx.engine,
            scan_backend=ManualSchedulerBackend(),
            sweep_backend=ManualSchedulerBackend(),
        )
        try:
            result = service.scan_now()
        finally:
            service.close()
    output_item(result, as_json=json_out, title="Scan Result")


@app.command("sweep")
def sweep(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one recovery pass now."""
    with handle_errors():
        ctx = make_context(database)
        emitter = create_event_emitter(ctx.settings, ctx.engine)
        sweeper = RecoverySweeper(
            ctx.records,
            emitter=emitter,
            stuck_threshold=timedelta(seconds=ctx.settings.stuck_threshold_seconds),
        )
        try:
            result = sweeper.sweep_once()
        finally:
            emitter.close()
    output_item(result, as_json=json_out, title="Sweep Result")
