"""Main Typer app definition and routing.

This is the canonical entry point for the CLI. The app and callback are
defined here; command modules register themselves on import.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from spec_pilot import __version__
from spec_pilot.cli.common import get_console, set_project_dir

# Create Typer app
app = typer.Typer(
    name="spec-pilot",
    help="Spec-driven feature implementation with quality-gated retries",
    add_completion=False,
)

# Rich console for output - use singleton from common module
console = get_console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"spec-pilot version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(
        None,
        "--project",
        "-p",
        help="Project directory to operate on (default: current directory)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    spec-pilot - specify, plan, tasks, implement, verify.

    Delegates code generation to an external agent and verifies the result
    with test, lint and build gates. Use --project/-p to operate on a
    different project directory.
    """
    set_project_dir(None)
    if project:
        project_path = Path(project)
        if not project_path.is_dir():
            console.print(f"[red]Error: Project directory not found: {project}[/red]")
            raise typer.Exit(1)
        set_project_dir(str(project_path.absolute()))

    # If no subcommand and no --help, show help
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


# =========================================================================
# Command Registration
# =========================================================================
# Command modules import `app` from here, so they must be imported
# AFTER the app object is created

import spec_pilot.cli.feature  # noqa: F401, E402
import spec_pilot.cli.project  # noqa: F401, E402


# =========================================================================
# Entry Point
# =========================================================================


def cli_main() -> None:
    """Entry point for the CLI."""
    app()


__all__ = ["app", "cli_main"]
