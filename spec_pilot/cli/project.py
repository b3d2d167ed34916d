"""Project commands: run (the full pipeline) and init-config.

Note: This module is imported by cli/app.py after the main app is defined.
"""
from __future__ import annotations

from typing import Optional

import typer

from spec_pilot.cli.app import app
from spec_pilot.cli.common import (
    EXIT_CONFIG_ERROR,
    EXIT_STEP_FAILED,
    build_context,
    get_console,
    get_project_root,
)
from spec_pilot.cli.display import show_pipeline_plan, show_pipeline_result

console = get_console()


@app.command()
def run(
    description: Optional[str] = typer.Argument(
        None,
        help="Natural language description of the feature to build.",
    ),
    continue_run: bool = typer.Option(
        False,
        "--continue",
        help="Resume from the last checkpoint instead of detecting artifacts.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the execution plan without running it.",
    ),
) -> None:
    """
    Run the specify, plan, tasks, implement, quality pipeline.

    Steps whose artifacts already exist are skipped. A failed step is
    recorded as the checkpoint; rerun with --continue to retry it.
    """
    from spec_pilot.errors import PipelineStepError
    from spec_pilot.llm_clients import ClaudeCliAgent
    from spec_pilot.models import PipelineStep
    from spec_pilot.pipeline import ArtifactDetector, PipelineStepMachine
    from spec_pilot.quality.gates import QualityGateRunner
    from spec_pilot.state_store import FeatureStateStore

    ctx = build_context()
    config = ctx.config

    store = FeatureStateStore(config, ctx.logger)
    store.load()

    machine = PipelineStepMachine(
        config=config,
        agent=ClaudeCliAgent(config, ctx.logger),
        store=store,
        gate_runner=QualityGateRunner.from_config(config, ctx.logger),
        logger=ctx.logger,
    )

    steps = machine.determine_steps(ArtifactDetector(config.repo_root).detect(), resume=continue_run)
    if continue_run and store.get_checkpoint() is None:
        console.print("[yellow]No checkpoint recorded; planning from project artifacts.[/yellow]")
    if description and PipelineStep.SPECIFY not in steps:
        console.print(
            "[yellow]Note:[/yellow] the specify step is skipped, so the description is ignored. "
            "Remove the existing specs/**/spec.md to write a new specification."
        )
    show_pipeline_plan(steps, console)
    console.print()

    try:
        result = machine.run(description, resume=continue_run, dry_run=dry_run)
    except PipelineStepError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print("  Fix the problem and rerun with [cyan]spec-pilot run --continue[/cyan]")
        raise typer.Exit(EXIT_STEP_FAILED)

    show_pipeline_result(result, console)


@app.command("init-config")
def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing configuration file.",
    ),
) -> None:
    """Write a starter .spec-pilot.yaml to the project directory."""
    from spec_pilot.config import ConfigError, write_default_config

    try:
        path = write_default_config(get_project_root(), overwrite=force)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    console.print(f"[green]Created[/green] {path}")
