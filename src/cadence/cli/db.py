"""
CLI: ``cadence db`` — database management commands.
"""

from __future__ import annotations

import typer
from sqlalchemy import inspect

from cadence.cli.utils import handle_errors, make_context, output_item

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    with handle_errors():
        ctx = make_context(database)
        tables = sorted(inspect(ctx.engine).get_table_names())
    output_item(
        {"database_url": ctx.engine.url.render_as_string(hide_password=True), "tables": tables},
        as_json=json_out,
        title="Database Init",
    )
