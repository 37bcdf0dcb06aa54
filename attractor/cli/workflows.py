"""CLI commands for browsing the workflow catalog.

Example usage::

    attractor workflows list
    attractor workflows show deploy
    attractor workflows show ./flows/deploy.awf.kdl
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from attractor.cli.errors import error_handler
from attractor.cli.workspace import current_workspace
from attractor.workflow.discovery import discover_workflows, resolve_workflow_path
from attractor.workflow.parser import parse_workflow_file

logger = logging.getLogger(__name__)

workflows_app = typer.Typer(
    name="workflows",
    help="List and inspect workflow files across project, repo and global locations.",
    no_args_is_help=True,
)

_console = Console(stderr=True)
_out_console = Console()  # stdout for data output


def print_warnings(console: Console, warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@workflows_app.command("list")
def list_workflows(ctx: typer.Context) -> None:
    """List every discoverable workflow, most specific location first."""
    with error_handler(_console):
        ws = current_workspace(ctx.obj)
        catalog = discover_workflows(ws.cwd, ws.repo_root, ws.home_dir)

        if not catalog.entries:
            _console.print("[yellow]No workflows found.[/yellow]")
        else:
            table = Table(title="Workflows")
            table.add_column("Name", style="cyan", no_wrap=True)
            table.add_column("Location", no_wrap=True)
            table.add_column("Stages", justify="right", no_wrap=True)
            table.add_column("Description")
            table.add_column("Path", style="dim")
            for entry in catalog.entries:
                table.add_row(
                    escape(entry.stem),
                    entry.location.value,
                    str(entry.stage_count),
                    escape(entry.description or ""),
                    escape(str(entry.path)),
                )
            _out_console.print(table)

        print_warnings(_console, catalog.warnings)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@workflows_app.command("show")
def show_workflow(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Workflow name or path to a .awf.kdl file."),
) -> None:
    """Show a summary of one workflow's stages and transitions."""
    with error_handler(_console):
        ws = current_workspace(ctx.obj)
        resolved = resolve_workflow_path(ref, ws.cwd, ws.repo_root, ws.home_dir)
        print_warnings(_console, resolved.warnings)
        workflow = parse_workflow_file(resolved.path)

        _out_console.print(f"[bold]{escape(workflow.name)}[/bold]  [dim]{escape(str(resolved.path))}[/dim]")
        if workflow.description:
            _out_console.print(escape(workflow.description))
        if workflow.goal:
            _out_console.print(f"Goal: {escape(workflow.goal)}")
        _out_console.print(f"Start: {escape(workflow.start)}")

        table = Table(title="Stages")
        table.add_column("Stage", style="cyan", no_wrap=True)
        table.add_column("Kind", no_wrap=True)
        table.add_column("Routes to")
        for stage in workflow.stages:
            if stage.options:
                targets = [f"{o.key} -> {o.to}" for o in stage.options]
            elif stage.routes:
                targets = [f"{r.when} -> {r.to}" for r in stage.routes]
            else:
                targets = [t.to for t in workflow.transitions if t.from_stage == stage.id]
            table.add_row(escape(stage.id), stage.kind.value, escape(", ".join(targets)))
        _out_console.print(table)
