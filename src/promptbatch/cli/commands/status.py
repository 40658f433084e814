"""Status command for the promptbatch CLI.

Read-only view of a queue: how many units are pending, done and failed,
and which units failed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import typer

from promptbatch.core.checkpoint import ErrorSentinel, UnitStatus, WorkUnit, count_by_status
from promptbatch.core.errors import QueueFileError

from ..helpers import configure_global_logging, load_config, open_queue, sentinel_from_config
from ..output import console, create_counts_table, create_failed_units_table


def status(
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
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output status as JSON",
    ),
) -> None:
    """Show pending, done and failed counts for a queue."""
    config = load_config(config_file, console)
    configure_global_logging(console, config if config_file else None)
    queue = open_queue(queue_file, config, console)
    sentinel = sentinel_from_config(config)

    try:
        units = asyncio.run(queue.load())
    except QueueFileError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    failed = [u for u in units if u.status(sentinel) is UnitStatus.FAILED]

    if json_output:
        console.print_json(data=_status_dict(queue_file, units, failed, sentinel))
        return

    console.print(create_counts_table(count_by_status(units, sentinel), title=queue_file.name))
    if failed:
        console.print()
        console.print(create_failed_units_table(failed))


def _status_dict(
    queue_file: Path,
    units: list[WorkUnit],
    failed: list[WorkUnit],
    sentinel: ErrorSentinel,
) -> dict[str, Any]:
    counts = count_by_status(units, sentinel)
    return {
        "queue": str(queue_file),
        "total": len(units),
        "counts": {status.value: count for status, count in counts.items()},
        "failed": [
            {"id": u.id, "label": u.label, "result": u.result} for u in failed
        ],
    }
