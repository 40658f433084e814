"""Run command for the promptbatch CLI.

Processes every pending unit of a CSV queue through a browser-driven chat
page. Results are written back into the queue file after each unit, so an
interrupted run resumes where it stopped.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.progress import Progress, TaskID

from promptbatch.core.checkpoint import ErrorSentinel, WorkUnit
from promptbatch.core.config import AppConfig
from promptbatch.core.errors import BrowserStartupError, SetupError, SurfaceError
from promptbatch.core.logging import UnitContext, get_logger
from promptbatch.detection.integrity import SessionIntegrityGuard
from promptbatch.diagnostics import Diagnostics, LogSink, ScreenshotSink
from promptbatch.execution import (
    BatchProcessor,
    Exchange,
    ProcessingOrder,
    RetryOrchestrator,
    RunSummary,
    UnitCallback,
    UnitOutcome,
)
from promptbatch.state import CsvWorkQueue
from promptbatch.surface.base import InteractionSurface

from ..helpers import (
    ErrorMessages,
    configure_global_logging,
    is_quiet,
    load_config,
    open_queue,
    sentinel_from_config,
)
from ..output import console, create_run_progress, create_run_summary_panel, truncate

_logger = get_logger("cli.run")


def run(
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
    no_retry: bool = typer.Option(
        False,
        "--no-retry",
        "-n",
        help="Skip units whose result is an error record instead of retrying them",
    ),
    reverse: bool = typer.Option(
        False,
        "--reverse",
        "-r",
        help="Process the queue from the last row to the first",
    ),
    headless: bool | None = typer.Option(
        None,
        "--headless/--headed",
        help="Run the browser without a window (overrides config)",
    ),
    url: str | None = typer.Option(
        None,
        "--url",
        help="Chat page URL (overrides config)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the run summary as JSON",
    ),
) -> None:
    """Process every pending unit in a CSV work queue.

    Exit codes:
      0: Run completed (individual units may have failed)
      1: Run could not start (queue, config or browser problem)
      130: Interrupted; completed units are already saved
    """
    config = load_config(config_file, console)
    configure_global_logging(console, config if config_file else None)
    config = apply_overrides(config, headless=headless, url=url)
    queue = open_queue(queue_file, config, console)

    order = ProcessingOrder.REVERSE if reverse else None
    retry_failures = False if no_retry else None
    show_progress = not (is_quiet() or json_output)

    try:
        summary = asyncio.run(
            _run_batch(queue, config, order, retry_failures, show_progress)
        )
    except SetupError as e:
        console.print(f"[red]{ErrorMessages.SETUP_FAILED}:[/red] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print(
            f"\n[yellow]Interrupted. Progress is saved in {queue.location}; "
            "run again to resume.[/yellow]"
        )
        raise typer.Exit(130) from None

    if json_output:
        console.print_json(data=summary.to_dict())
    elif not is_quiet():
        console.print(create_run_summary_panel(summary))


def apply_overrides(
    config: AppConfig, *, headless: bool | None = None, url: str | None = None
) -> AppConfig:
    """Return a copy of config with command-line surface overrides applied."""
    updates: dict[str, object] = {}
    if headless is not None:
        updates["headless"] = headless
    if url:
        updates["url"] = url
    if not updates:
        return config
    surface = config.surface.model_copy(update=updates)
    return config.model_copy(update={"surface": surface})


def build_processor(
    queue: CsvWorkQueue,
    config: AppConfig,
    surface: InteractionSurface,
    sentinel: ErrorSentinel,
    on_unit_done: UnitCallback | None = None,
) -> BatchProcessor:
    """Wire guard, diagnostics, exchange and retry around a surface."""
    guard = SessionIntegrityGuard(
        surface.probe_location,
        reset_patterns=config.guard.reset_patterns,
        conversation_pattern=config.guard.conversation_pattern,
    )
    diagnostics = Diagnostics([LogSink(), ScreenshotSink(surface)])
    exchange = Exchange(
        surface,
        guard,
        response_config=config.detection,
        upload_config=config.upload,
        diagnostics=diagnostics,
        base_dir=queue.path.resolve().parent,
    )
    orchestrator = RetryOrchestrator(
        surface,
        config.retry,
        exchange=exchange,
        guard=guard,
        diagnostics=diagnostics,
        sentinel=sentinel,
    )
    return BatchProcessor(
        orchestrator,
        config.batch,
        checkpoint=queue.save,
        sentinel=sentinel,
        diagnostics=diagnostics,
        on_unit_done=on_unit_done,
    )


async def _run_batch(
    queue: CsvWorkQueue,
    config: AppConfig,
    order: ProcessingOrder | None,
    retry_failures: bool | None,
    show_progress: bool,
) -> RunSummary:
    from promptbatch.surface.playwright_surface import PlaywrightSurface

    units = await queue.load()
    sentinel = sentinel_from_config(config)
    context = UnitContext()

    progress: Progress | None = create_run_progress(console) if show_progress else None
    task_id: TaskID | None = None

    def on_unit_done(unit: WorkUnit, outcome: UnitOutcome | None) -> None:
        if progress is None or task_id is None:
            return
        if outcome is None:
            last = f"{unit.display_name}: skipped"
        elif outcome.succeeded:
            last = f"{unit.display_name}: done"
        else:
            last = f"{unit.display_name}: {truncate(outcome.payload, 50)}"
        progress.update(task_id, advance=1, last=last)

    surface = PlaywrightSurface(config.surface)
    processor = build_processor(queue, config, surface, sentinel, on_unit_done)

    await surface.open()
    try:
        try:
            await surface.ensure_ready()
        except SurfaceError as e:
            raise BrowserStartupError(
                f"Chat input never appeared at {config.surface.url}; "
                f"is the profile signed in? ({e})"
            ) from e

        if progress is not None:
            progress.start()
            task_id = progress.add_task(
                f"[cyan]{queue.path.name}[/cyan]", total=len(units), last=""
            )
        _logger.info("run.started", queue=queue.location, run_id=context.run_id)
        return await processor.run(
            units, order, retry_failures=retry_failures, context=context
        )
    finally:
        if progress is not None and progress.live.is_started:
            progress.stop()
        await surface.close()
