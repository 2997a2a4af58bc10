"""
CLI: ``cadence workflow`` — workflow definition and trigger-state commands.
"""

from __future__ import annotations

from datetime import datetime

import typer

from cadence.cli.utils import fail, handle_errors, make_context, output_item, output_items
from cadence.core.clock import utc_now
from cadence.core.errors import WorkflowNotFoundError
from cadence.core.models import WorkflowCreate, WorkflowStatus

app = typer.Typer(no_args_is_help=True)


@app.command("create")
def create_workflow(
    email: str = typer.Option(..., "--email", "-e", help="Owner email"),
    interval: int = typer.Option(..., "--interval", "-i", help="Interval in seconds"),
    start: datetime | None = typer.Option(None, "--start", help="Starting time (ISO 8601, default now)"),
    active: bool = typer.Option(True, "--active/--inactive"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a workflow."""
    with handle_errors():
        ctx = make_context(database)
        fields = {"user_email": email, "interval_seconds": interval, "is_active": active}
        if start is not None:
            fields["starting_time"] = start
        workflow = ctx.workflows.create(WorkflowCreate(**fields), now=utc_now())
    output_item(workflow, as_json=json_out, title="Workflow Created")


@app.command("list")
def list_workflows(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List all workflows."""
    with handle_errors():
        ctx = make_context(database)
        workflows = ctx.workflows.list_all()
    output_items(workflows, as_json=json_out, title="Workflows")


def _set_active(workflow_id: int, active: bool, database: str | None, json_out: bool) -> None:
    with handle_errors():
        ctx = make_context(database)
        if not ctx.workflows.set_active(workflow_id, active):
            raise WorkflowNotFoundError(workflow_id)
        workflow = ctx.workflows.get(workflow_id)
    output_item(workflow, as_json=json_out, title="Workflow Enabled" if active else "Workflow Disabled")


@app.command("enable")
def enable_workflow(
    workflow_id: int = typer.Argument(..., help="Workflow ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Activate a workflow so the scanner picks it up."""
    _set_active(workflow_id, True, database, json_out)


@app.command("disable")
def disable_workflow(
    workflow_id: int = typer.Argument(..., help="Workflow ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Deactivate a workflow. A run in flight finishes first."""
    _set_active(workflow_id, False, database, json_out)


@app.command("reset")
def reset_workflow(
    workflow_id: int = typer.Argument(..., help="Workflow ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Return a workflow stranded in ``running`` to ``idle``.

    Only use this when no engine is executing the workflow.
    """
    with handle_errors():
        ctx = make_context(database)
        workflow = ctx.workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        if workflow.current_status != WorkflowStatus.RUNNING:
            fail(f"Workflow {workflow_id} is {workflow.current_status.value}, not running")
        ctx.workflows.reset_run(workflow_id)
        workflow = ctx.workflows.get(workflow_id)
    output_item(workflow, as_json=json_out, title="Workflow Reset")
