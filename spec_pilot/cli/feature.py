"""Feature commands: implement, status, reset.

Note: This module is imported by cli/app.py after the main app is defined.
Heavy modules are imported inside the command functions.
"""
from __future__ import annotations

import json
from typing import Optional

import typer

from spec_pilot.cli.app import app
from spec_pilot.cli.common import EXIT_STEP_FAILED, build_context, get_console
from spec_pilot.cli.display import show_feature_result, show_report, show_status_table

console = get_console()


@app.command()
def implement(
    feature_ids: Optional[list[str]] = typer.Argument(
        None,
        help="Feature IDs to implement. All eligible features if omitted.",
    ),
    priority: Optional[str] = typer.Option(
        None,
        "--priority",
        help="Only implement features of this priority (P1-P4).",
    ),
    max_retries: Optional[int] = typer.Option(
        None,
        "--max-retries",
        min=0,
        help="Override the fix retry budget.",
    ),
    no_tests: bool = typer.Option(False, "--no-tests", help="Skip the test gate."),
    no_lint: bool = typer.Option(False, "--no-lint", help="Skip the lint gate."),
    no_build: bool = typer.Option(False, "--no-build", help="Skip the build gate."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be implemented without invoking the agent.",
    ),
    continue_run: bool = typer.Option(
        False,
        "--continue",
        help="Include failed features whose retry budget is exhausted.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """
    Implement features from specs/ with the code generation agent.

    Each feature runs through generation, quality gates and up to
    --max-retries fix attempts. Exits with 3 if any feature failed.
    """
    from spec_pilot.errors import SpecPilotError
    from spec_pilot.feature_scanner import FeatureScanner
    from spec_pilot.llm_clients import ClaudeCliAgent
    from spec_pilot.models import ImplementationResult
    from spec_pilot.orchestrator import FeatureOrchestrator, OrchestratorOptions
    from spec_pilot.quality.gates import QualityGateRunner
    from spec_pilot.session_tracker import SessionTracker, build_report
    from spec_pilot.state_store import FeatureStateStore
    from spec_pilot.status_detector import StatusDetector

    ctx = build_context(echo=not json_output)
    config = ctx.config

    if not config.specs_path.is_dir():
        console.print(f"[red]Error:[/red] No specs directory found at {config.specs_path}")
        console.print("  Run [cyan]spec-pilot run \"<feature description>\"[/cyan] to create one.")
        raise typer.Exit(EXIT_STEP_FAILED)

    scanner = FeatureScanner(config.specs_path, ctx.logger)
    features = scanner.scan()

    if feature_ids:
        known = {f.id for f in features}
        unknown = [fid for fid in feature_ids if fid not in known]
        if unknown:
            console.print(f"[red]Error:[/red] Unknown feature(s): {', '.join(unknown)}")
            raise typer.Exit(EXIT_STEP_FAILED)
        features = [f for f in features if f.id in feature_ids]

    priorities = [priority.upper()] if priority else config.priorities
    features = scanner.sort_by_priority(scanner.filter_by_priority(features, priorities))

    if not features:
        if not json_output:
            console.print("[yellow]No features found in specs/ matching the filters.[/yellow]")
        return

    store = FeatureStateStore(config, ctx.logger)
    store.load()

    options = OrchestratorOptions.from_config(
        config,
        max_retries=max_retries,
        dry_run=dry_run,
        skip_tests=True if no_tests else None,
        skip_lint=True if no_lint else None,
        skip_build=True if no_build else None,
    )
    detector = StatusDetector(store, options.max_retries)

    if continue_run:
        eligible = [f for f in features if not detector.is_implemented(f)]
    else:
        eligible = detector.filter_pending_features(features)
    eligible_ids = {f.id for f in eligible}
    skipped = [f.id for f in features if f.id not in eligible_ids]

    tracker = SessionTracker(config.logs_path)
    tracker.increment_skipped(len(skipped))

    if not json_output:
        console.print(f"[bold]Implementation queue:[/bold] {len(eligible)} feature(s)")
        for feature in eligible:
            console.print(f"  - {feature.id} [dim]({feature.priority})[/dim]")
        if skipped:
            console.print(f"[dim]Skipped (completed or out of retries): {', '.join(skipped)}[/dim]")
        console.print()

    orchestrator = FeatureOrchestrator(
        config=config,
        agent=ClaudeCliAgent(config, ctx.logger),
        store=store,
        gate_runner=QualityGateRunner.from_config(config, ctx.logger),
        logger=ctx.logger,
        session_tracker=tracker,
        options=options,
    )

    results = []
    aborted: Optional[SpecPilotError] = None
    try:
        for feature in eligible:
            if not json_output:
                console.print(f"[cyan]Implementing {feature.id}[/cyan] [dim](priority {feature.priority})[/dim]")
            result = orchestrator.implement_feature(feature)
            results.append(result)
            if not json_output:
                show_feature_result(result, console)
    except SpecPilotError as e:
        aborted = e
        results.append(ImplementationResult(feature_id=feature.id, error=str(e)))
        ctx.logger.log("implement_aborted", {
            "feature_id": feature.id,
            "error": str(e),
            "processed_features": [r.feature_id for r in results],
        }, level="error")
        if not json_output:
            show_feature_result(results[-1], console)

    tracker.complete()
    tracker.save()
    report = build_report(tracker, results, skipped)

    if json_output:
        payload = report.to_dict()
        if aborted:
            payload["error"] = str(aborted)
        typer.echo(json.dumps(payload, indent=2))
    else:
        console.print()
        show_report(report, console)

    if aborted:
        raise typer.Exit(EXIT_STEP_FAILED)

    if report.exit_code != 0:
        raise typer.Exit(report.exit_code)


@app.command()
def status(
    json_output: bool = typer.Option(False, "--json", help="Print status as JSON."),
) -> None:
    """
    Show the implementation status of every feature.

    Lists features found under specs/ plus any recorded in state whose
    spec has since been removed.
    """
    from spec_pilot.feature_scanner import FeatureScanner
    from spec_pilot.state_store import FeatureStateStore
    from spec_pilot.status_detector import StatusDetector

    ctx = build_context(echo=not json_output)
    config = ctx.config

    scanner = FeatureScanner(config.specs_path, ctx.logger)
    features = scanner.sort_by_priority(scanner.scan())

    store = FeatureStateStore(config, ctx.logger)
    store.load()
    detector = StatusDetector(store, config.max_retries)

    priorities = {f.id: f.priority for f in features}
    feature_ids = [f.id for f in features]
    feature_ids += [fid for fid in store.list_features() if fid not in priorities]

    rows = [(fid, priorities.get(fid, "-"), detector.get_status(fid)) for fid in feature_ids]
    summary = detector.get_summary(feature_ids)
    checkpoint = store.get_checkpoint()

    if json_output:
        typer.echo(json.dumps({
            "features": [dict(info.to_dict(), priority=prio) for _, prio, info in rows],
            "summary": summary.to_dict(),
            "checkpoint": checkpoint.value if checkpoint else None,
            "last_run": store.last_run,
        }, indent=2))
        return

    show_status_table(rows, summary, console)
    if checkpoint:
        console.print(f"[dim]Pipeline checkpoint:[/dim] {checkpoint.value}")


@app.command()
def reset(
    feature_ids: Optional[list[str]] = typer.Argument(
        None,
        help="Feature IDs to reset.",
    ),
    all_features: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Reset every recorded feature and the pipeline checkpoint.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """
    Reset feature implementation state.

    Clears status, retry counts and failed checks so features can be
    implemented again.
    """
    from spec_pilot.state_store import FeatureStateStore

    ctx = build_context()
    store = FeatureStateStore(ctx.config, ctx.logger)
    store.load()

    recorded = store.list_features()
    if all_features:
        to_reset = recorded
    elif feature_ids:
        to_reset = [fid for fid in feature_ids if fid in recorded]
        not_found = [fid for fid in feature_ids if fid not in recorded]
        if not_found:
            console.print(f"[yellow]Not found in state:[/yellow] {', '.join(not_found)}")
    else:
        console.print("[red]Error:[/red] Specify feature IDs or use --all")
        raise typer.Exit(EXIT_STEP_FAILED)

    if not to_reset and not (all_features and store.get_checkpoint()):
        console.print("No features to reset.")
        return

    for fid in to_reset:
        state = store.get_feature_state(fid)
        console.print(f"  - {fid} [dim](status: {state.status.value}, retries: {state.retry_count})[/dim]")

    if not force and not typer.confirm("Reset these features?", default=False):
        console.print("Cancelled.")
        raise typer.Exit(0)

    if all_features:
        store.reset_all_features()
        store.clear_checkpoint()
    else:
        for fid in to_reset:
            store.reset_feature(fid)
    store.save()

    console.print(f"[green]Reset {len(to_reset)} feature(s).[/green]")
