"""Validate command for the promptbatch CLI.

Checks a queue without opening a browser: the file parses, the input
column exists, and attachment references point at existing files.

Exit codes:
  0: Queue is usable (missing attachments are reported as warnings)
  1: Queue cannot be processed (missing file or input column, bad config)
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from promptbatch.core.checkpoint import UnitStatus, count_by_status
from promptbatch.core.errors import QueueFileError
from promptbatch.surface.files import missing_files

from ..helpers import configure_global_logging, load_config, open_queue, sentinel_from_config
from ..output import console, create_validation_table


def validate(
    queue_file: Path = typer.Argument(
        ...,
        help="Path to the CSV work queue",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file",
    ),
) -> None:
    """Check a queue's columns and attachment references."""
    config = load_config(config_file, console)
    configure_global_logging(console, config if config_file else None)
    queue = open_queue(queue_file, config, console)

    try:
        units = asyncio.run(queue.load())
    except QueueFileError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1) from None

    columns = config.columns
    console.print(f"\nValidating [cyan]{queue_file}[/cyan]...\n")
    console.print(f"[green]✓[/green] Input column '{columns.input}' present")
    for name in (columns.label, columns.attachments):
        if name not in queue.fieldnames:
            console.print(f"[yellow]![/yellow] Optional column '{name}' not found")

    base_dir = queue.path.resolve().parent
    table = create_validation_table()
    for unit in units:
        missing = missing_files(unit.attachments, base_dir)
        if missing:
            table.add_row(str(unit.id), unit.label or "-", ", ".join(missing))

    if table.row_count:
        console.print(
            f"[yellow]![/yellow] {table.row_count} unit(s) reference missing files; "
            "those files will be skipped"
        )
        console.print(table)
    else:
        console.print("[green]✓[/green] All attachment references resolve")

    empty = [u.id for u in units if not u.input.strip()]
    if empty:
        console.print(
            f"[yellow]![/yellow] {len(empty)} unit(s) have no input and will be skipped"
        )

    counts = count_by_status(units, sentinel_from_config(config))
    console.print()
    console.print(
        f"[dim]{len(units)} units: {counts[UnitStatus.PENDING]} pending, "
        f"{counts[UnitStatus.DONE]} done, {counts[UnitStatus.FAILED]} failed[/dim]"
    )
