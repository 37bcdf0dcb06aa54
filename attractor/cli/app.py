"""The ``attractor`` command: init a project, compile and validate workflows.

Workflow listing lives in :mod:`attractor.cli.workflows`.  Human-facing
messages go to stderr; compiled output and validation reports go to stdout.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from attractor.cli.config import DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILE, default_config_toml, load_config
from attractor.cli.errors import EXIT_GENERAL_ERROR, CLIError, error_handler
from attractor.cli.logging_setup import setup_logging
from attractor.cli.workflows import print_warnings, workflows_app
from attractor.cli.workspace import current_workspace
from attractor.engine.dot_writer import graph_to_dot
from attractor.workflow.discovery import WORKFLOWS_SUBDIR, resolve_workflow_path
from attractor.workflow.loader import load_workflow_file
from attractor.workflow.parser import parse_workflow_file
from attractor.workflow.validator import validate_workflow

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="attractor",
    help="Attractor – compile declarative workflow files into executable routing graphs.",
    add_completion=False,
    no_args_is_help=True,
)

_console = Console(stderr=True)
_out_console = Console()

# Register sub-command groups
app.add_typer(workflows_app, name="workflows")


# ---------------------------------------------------------------------------
# Version callback
# ---------------------------------------------------------------------------

def _version_callback(value: bool) -> None:
    """Eager ``--version`` handler."""
    if value:
        from attractor import __version__

        _console.print(f"attractor {__version__}")
        raise typer.Exit()


# ---------------------------------------------------------------------------
# Main callback (global options)
# ---------------------------------------------------------------------------

@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) output.",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration TOML file.",
    ),
) -> None:
    """Global options for Attractor CLI."""
    with error_handler(_console):
        settings = load_config(config)

    level = "DEBUG" if verbose else settings.log_level
    setup_logging(level, settings.log_file)

    ctx.obj = settings


# ---------------------------------------------------------------------------
# Init command
# ---------------------------------------------------------------------------

@app.command()
def init(
    path: Optional[Path] = typer.Argument(
        None,
        help="Target directory to initialise. Defaults to current directory.",
    ),
) -> None:
    """Create ``.attractor/config.toml`` and the project workflows directory."""
    with error_handler(_console):
        project_dir = (path or Path.cwd()).resolve()
        if not project_dir.is_dir():
            raise CLIError(f"Not a directory: {project_dir}")

        workflows_dir = project_dir.joinpath(*WORKFLOWS_SUBDIR)
        workflows_dir.mkdir(parents=True, exist_ok=True)

        config_file = project_dir / DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE
        if config_file.exists():
            _console.print(f"[yellow]Config already exists: {escape(str(config_file))}[/yellow]")
        else:
            config_file.write_text(default_config_toml(), encoding="utf-8")
            logger.info("Wrote default config to %s", config_file)

        _console.print(f"[green]Initialised Attractor project at {escape(str(project_dir))}[/green]")


# ---------------------------------------------------------------------------
# Compile command
# ---------------------------------------------------------------------------

@app.command("compile")
def compile_cmd(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Workflow name or path to a .awf.kdl file."),
    dot: bool = typer.Option(
        False,
        "--dot",
        help="Emit Graphviz DOT instead of a JSON summary.",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the result to a file instead of stdout.",
    ),
) -> None:
    """Compile a workflow into its Graph IR.

    Example::

        attractor compile deploy --dot -o deploy.dot
        attractor compile ./flows/review.awf.kdl
    """
    with error_handler(_console):
        ws = current_workspace(ctx.obj)
        resolved = resolve_workflow_path(ref, ws.cwd, ws.repo_root, ws.home_dir)
        print_warnings(_console, resolved.warnings)

        compiled = load_workflow_file(resolved.path)
        for diagnostic in compiled.diagnostics:
            _console.print(f"[yellow]{escape(str(diagnostic))}[/yellow]")

        if dot:
            text = graph_to_dot(compiled.graph)
        else:
            text = json.dumps(compiled.graph.to_dict(), indent=2) + "\n"

        if output is not None:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(text, encoding="utf-8")
            _console.print(f"[green]Wrote {escape(str(output))}[/green]")
        else:
            typer.echo(text, nl=False)


# ---------------------------------------------------------------------------
# Validate command
# ---------------------------------------------------------------------------

@app.command()
def validate(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Workflow name or path to a .awf.kdl file."),
) -> None:
    """Report validation errors and warnings for a workflow.

    Exits with status 1 when any error is found.
    """
    with error_handler(_console):
        ws = current_workspace(ctx.obj)
        resolved = resolve_workflow_path(ref, ws.cwd, ws.repo_root, ws.home_dir)
        print_warnings(_console, resolved.warnings)

        workflow = parse_workflow_file(resolved.path)
        diagnostics = validate_workflow(workflow)
        errors = [d for d in diagnostics if d.is_error]

        for diagnostic in diagnostics:
            style = "red" if diagnostic.is_error else "yellow"
            _out_console.print(f"[{style}]{escape(str(diagnostic))}[/{style}]")

        if errors:
            raise CLIError(
                f"{workflow.name}: {len(errors)} error(s), "
                f"{len(diagnostics) - len(errors)} warning(s)",
                exit_code=EXIT_GENERAL_ERROR,
            )
        _out_console.print(
            f"[green]{escape(workflow.name)} is valid[/green] "
            f"({len(diagnostics)} warning(s))"
        )
