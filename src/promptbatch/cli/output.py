"""Rich output formatting for the promptbatch CLI.

Color schemes, table builders and the progress bar used by the commands.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from promptbatch.core.checkpoint import UnitStatus

if TYPE_CHECKING:
    from promptbatch.core.checkpoint import WorkUnit
    from promptbatch.execution.batch import RunSummary

# Quiet/JSON modes are handled by guards in each command, not by this console.
console = Console()


class StatusColors:
    """Color mappings for unit status values."""

    UNIT_STATUS: dict[UnitStatus, str] = {
        UnitStatus.PENDING: "yellow",
        UnitStatus.DONE: "green",
        UnitStatus.FAILED: "red",
    }

    @classmethod
    def get_unit_color(cls, status: UnitStatus) -> str:
        return cls.UNIT_STATUS.get(status, "white")


def format_duration(seconds: float | None) -> str:
    """Format a duration in seconds (e.g., "5.2s", "3m 12s", "1h 30m")."""
    if seconds is None:
        return "N/A"
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def truncate(text: str, limit: int = 80) -> str:
    """Single-line preview of a cell."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."


# =============================================================================
# Tables and panels
# =============================================================================


def create_counts_table(counts: dict[UnitStatus, int], title: str = "Queue Status") -> Table:
    """Table of unit counts per derived status."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Status", width=10)
    table.add_column("Units", justify="right", width=8)
    for status, count in counts.items():
        color = StatusColors.get_unit_color(status)
        table.add_row(f"[{color}]{status.value}[/{color}]", str(count))
    table.add_row("[bold]total[/bold]", str(sum(counts.values())))
    return table


def create_failed_units_table(units: list[WorkUnit], title: str = "Failed Units") -> Table:
    """Table of units whose result is the error sentinel."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="cyan", width=5)
    table.add_column("Label", no_wrap=True)
    table.add_column("Error", style="dim", no_wrap=False)
    for unit in units:
        table.add_row(str(unit.id), unit.label or "-", truncate(unit.result or ""))
    return table


def create_validation_table(title: str = "Attachment Check") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="cyan", width=5)
    table.add_column("Label", no_wrap=True)
    table.add_column("Missing", style="yellow", no_wrap=False)
    return table


def create_run_summary_panel(summary: RunSummary) -> Panel:
    """Panel with the final counts of a run."""
    lines = [
        f"[bold]Run {summary.run_id}[/bold]",
        "",
        "[bold]Units[/bold]",
        f"  Total: {summary.total}",
        f"  Processed: {summary.processed}",
        f"  [green]Succeeded: {summary.succeeded}[/green]"
        + (f" ({summary.soft_successes} after timeout)" if summary.soft_successes else ""),
        f"  [red]Failed: {summary.failed}[/red]",
        f"  Skipped: {summary.skipped}",
        "",
        "[bold]Execution[/bold]",
        f"  Attempts: {summary.total_attempts}",
        f"  Duration: {format_duration(summary.duration_seconds)}",
    ]
    if summary.checkpoint_failures:
        lines.append(f"  [yellow]Checkpoint failures: {summary.checkpoint_failures}[/yellow]")
    if summary.failed_ids:
        lines.append(f"  Failed units: {', '.join(str(i) for i in summary.failed_ids)}")

    border = "green" if summary.failed == 0 else "yellow"
    return Panel("\n".join(lines), title="Run Summary", border_style=border)


def create_run_progress(console_instance: Console | None = None) -> Progress:
    """Progress bar for a batch run (not yet started)."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=30),
        MofNCompleteColumn(),
        TextColumn("•"),
        TimeElapsedColumn(),
        TextColumn("•"),
        TextColumn("[dim]{task.fields[last]}[/dim]"),
        console=console_instance or console,
        transient=False,
    )

