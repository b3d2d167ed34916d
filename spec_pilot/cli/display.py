"""Display helpers and formatters for the CLI.

Contains Rich formatting utilities for statuses, gate results and reports.
This module should NOT import from the command modules to avoid circular imports.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from spec_pilot.models import ImplementationResult, ImplementationStatus, PipelineStep
from spec_pilot.session_tracker import format_duration

if TYPE_CHECKING:
    from spec_pilot.pipeline import PipelineResult
    from spec_pilot.session_tracker import ExecutionReport
    from spec_pilot.status_detector import StatusInfo, StatusSummary

# Status display names and colors
STATUS_DISPLAY: dict[ImplementationStatus, tuple[str, str]] = {
    ImplementationStatus.PENDING: ("Pending", "dim"),
    ImplementationStatus.IN_PROGRESS: ("In Progress", "cyan bold"),
    ImplementationStatus.TESTING: ("Testing", "blue"),
    ImplementationStatus.COMPLETED: ("Completed", "green bold"),
    ImplementationStatus.FAILED: ("Failed", "red bold"),
    ImplementationStatus.SKIPPED: ("Skipped", "magenta"),
}


def format_status(status: ImplementationStatus) -> Text:
    """Format a status enum as colored text."""
    display_name, style = STATUS_DISPLAY.get(status, (status.value, "white"))
    return Text(display_name, style=style)


def show_status_table(
    rows: list[tuple[str, str, StatusInfo]],
    summary: StatusSummary,
    console: Console,
) -> None:
    """Display a table of features (id, priority, status info) with a summary line."""
    if not rows:
        console.print(
            Panel(
                "[dim]No features found.[/dim]\n\n"
                "Create a specification under [cyan]specs/<feature-id>/spec.md[/cyan]\n"
                "or run: [cyan]spec-pilot run \"<feature description>\"[/cyan]",
                title="spec-pilot Status",
                border_style="dim",
            )
        )
        return

    table = Table(
        title="spec-pilot Status",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Feature", style="cyan", no_wrap=True)
    table.add_column("Priority", justify="center")
    table.add_column("Status", no_wrap=True)
    table.add_column("Retries", justify="right")
    table.add_column("Failed Checks")
    table.add_column("Last Attempt", style="dim")

    for feature_id, priority, info in rows:
        table.add_row(
            feature_id,
            priority,
            format_status(info.status),
            str(info.retry_count),
            ", ".join(info.failed_checks) or "-",
            info.last_attempt[:19].replace("T", " ") if info.last_attempt else "-",
        )

    console.print(table)
    console.print(
        f"\n[dim]Total:[/dim] {summary.total}  "
        f"[green]{summary.completed}[/green] completed, "
        f"[red]{summary.failed}[/red] failed, "
        f"[cyan]{summary.in_progress}[/cyan] in progress, "
        f"{summary.pending} pending"
        + (f", [magenta]{summary.skipped}[/magenta] skipped" if summary.skipped else "")
    )


def show_feature_result(result: ImplementationResult, console: Console) -> None:
    """One line per feature plus its failing gates."""
    if result.success:
        suffix = f" (with {result.retries} fix attempt{'s' if result.retries != 1 else ''})" if result.retries else ""
        console.print(f"[green]✓[/green] {result.feature_id}{suffix}")
        return

    console.print(f"[red]✗[/red] {result.feature_id}: {result.error or 'failed'}")
    for gate in result.quality_results:
        if gate.passed:
            continue
        console.print(f"    [red]{gate.type.value}[/red] failed ({len(gate.failures)} issue(s))")
        for failure in gate.failures[:5]:
            location = f"{failure.location}: " if failure.location else ""
            console.print(f"      [dim]{location}{failure.message}[/dim]", highlight=False)


def show_report(report: ExecutionReport, console: Console) -> None:
    """Display the end-of-run summary."""
    title = "Implementation complete" if report.exit_code == 0 else "Implementation finished with failures"
    lines = [
        f"[bold]Success:[/bold] {report.success_count} features",
        f"[bold]Failed:[/bold] {report.failure_count} features",
        f"[bold]Skipped:[/bold] {report.skipped_count} features",
        "",
        f"[bold]Total checks:[/bold] {report.total_checks}",
        f"[bold]Passed:[/bold] {report.checks_passed}",
        f"[bold]Fix attempts:[/bold] {report.checks_fixed}",
        "",
        f"[bold]Session ID:[/bold] {report.session_id}",
        f"[bold]Duration:[/bold] {format_duration(report.duration_seconds)}",
    ]
    console.print(
        Panel(
            "\n".join(lines),
            title=title,
            border_style="green" if report.exit_code == 0 else "red",
        )
    )


def show_pipeline_plan(steps: list[PipelineStep], console: Console) -> None:
    """Display the steps a pipeline run will execute."""
    console.print("[bold]Execution plan:[/bold]")
    for index, step in enumerate(steps, start=1):
        console.print(f"  {index}. {step.description} [dim]({step.value})[/dim]")


def show_pipeline_result(result: PipelineResult, console: Console) -> None:
    if result.dry_run:
        console.print("[yellow]Dry run - no changes made.[/yellow]")
        return
    console.print(f"[green]Pipeline completed[/green] ({len(result.completed)} step(s))")
