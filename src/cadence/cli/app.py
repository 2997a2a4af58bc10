"""
Root Typer application for the cadence CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from cadence.core.logging import configure_logging

app = Typer(
    name="cadence",
    help="cadence — time-triggered workflow execution engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from cadence import __version__

        try:
            v = pkg_version("cadence-engine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"cadence {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO instead of WARNING."),
) -> None:
    """cadence CLI — manage workflows and records, run the engine."""
    configure_logging(level="INFO" if verbose else "WARNING", json_format=False, stream=sys.stderr)


# ── Sub-command registration ─────────────────────────────────────────────

from cadence.cli.db import app as db_app  # noqa: E402
from cadence.cli.engine import app as engine_app  # noqa: E402
from cadence.cli.records import app as records_app  # noqa: E402
from cadence.cli.workflow import app as wf_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(wf_app, name="workflow", help="Workflow management.")
app.add_typer(records_app, name="records", help="Record ingestion and inspection.")
app.add_typer(engine_app, name="engine", help="Run the scanner and sweeper.")
