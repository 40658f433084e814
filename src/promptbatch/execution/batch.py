"""Batch processing of a work queue with per-unit checkpointing.

Units are processed one at a time, in forward or reverse order. After every
processed unit the whole queue is handed to the checkpoint callback before
the next unit starts, so an interrupted run loses at most the unit in flight.

Whether a unit needs processing is derived from its stored result alone,
which makes repeated runs over the same queue idempotent and resumable.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from promptbatch.core.checkpoint import DEFAULT_SENTINEL, ErrorSentinel, WorkUnit
from promptbatch.core.config import BatchConfig
from promptbatch.core.errors import PromptBatchError, SetupError, describe_error
from promptbatch.core.logging import UnitContext, get_logger
from promptbatch.diagnostics.base import DiagnosticEvent, Diagnostics
from promptbatch.execution.retry import UnitOutcome

_logger = get_logger("batch")

Checkpoint = Callable[[list[WorkUnit]], Awaitable[None]]
UnitCallback = Callable[[WorkUnit, UnitOutcome | None], None]


class ProcessingOrder(str, Enum):
    """Order in which queue indices are visited."""

    FORWARD = "forward"
    REVERSE = "reverse"


class SkipReason(str, Enum):
    HAS_RESULT = "has_result"
    FAILED_NO_RETRY = "failed_no_retry"
    NO_INPUT = "no_input"


class UnitProcessor(Protocol):
    """Anything that can process one unit (normally a RetryOrchestrator)."""

    async def process(self, unit: WorkUnit, context: UnitContext | None = None) -> UnitOutcome:
        ...


@dataclass
class RunSummary:
    """Summary of one batch run.

    Skipped units are those the policy decided not to touch; every other
    unit counts as processed and ends in exactly one of succeeded/failed.
    """

    run_id: str
    total: int
    processed: int = 0
    succeeded: int = 0
    soft_successes: int = 0
    failed: int = 0
    skipped: int = 0
    total_attempts: int = 0
    checkpoint_failures: int = 0
    duration_seconds: float = 0.0
    failed_ids: list[int] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Percentage of processed units that succeeded."""
        if self.processed == 0:
            return 0.0
        return (self.succeeded / self.processed) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert summary to dictionary for JSON output."""
        return {
            "run_id": self.run_id,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "soft_successes": self.soft_successes,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_attempts": self.total_attempts,
            "checkpoint_failures": self.checkpoint_failures,
            "duration_seconds": round(self.duration_seconds, 2),
            "success_rate": round(self.success_rate, 1),
            "failed_ids": list(self.failed_ids),
        }


def order_indices(count: int, order: ProcessingOrder) -> list[int]:
    """Queue indices in processing order."""
    indices = list(range(count))
    if order is ProcessingOrder.REVERSE:
        indices.reverse()
    return indices


class BatchProcessor:
    """Drives a list of units through a unit processor.

    Args:
        processor: Processes one unit; normally a RetryOrchestrator.
        config: Pacing and policy (delay, retry of failures, order, sentinel).
        checkpoint: Awaited with the full unit list after every processed unit.
        sentinel: Error sentinel used to recognise and write failed results.
        diagnostics: Observational sinks.
        on_unit_done: Synchronous hook called after each unit (processed or
            skipped), used by the CLI for progress display.
    """

    def __init__(
        self,
        processor: UnitProcessor,
        config: BatchConfig,
        *,
        checkpoint: Checkpoint | None = None,
        sentinel: ErrorSentinel = DEFAULT_SENTINEL,
        diagnostics: Diagnostics | None = None,
        on_unit_done: UnitCallback | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.processor = processor
        self.config = config
        self.checkpoint = checkpoint
        self.sentinel = sentinel
        self.diagnostics = diagnostics or Diagnostics()
        self.on_unit_done = on_unit_done
        self._sleep = sleep
        self._clock = clock

    def skip_reason(self, unit: WorkUnit, retry_failures: bool) -> SkipReason | None:
        """Why a unit is skipped, or None if it needs processing."""
        if unit.has_result():
            if not self.sentinel.matches(unit.result):
                return SkipReason.HAS_RESULT
            if not retry_failures:
                return SkipReason.FAILED_NO_RETRY
        if not unit.input.strip():
            return SkipReason.NO_INPUT
        return None

    def should_process(self, unit: WorkUnit, retry_failures: bool | None = None) -> bool:
        retry = self.config.retry_failures if retry_failures is None else retry_failures
        return self.skip_reason(unit, retry) is None

    async def run(
        self,
        units: list[WorkUnit],
        order: ProcessingOrder | None = None,
        *,
        retry_failures: bool | None = None,
        context: UnitContext | None = None,
    ) -> RunSummary:
        """Process every unit that needs it, mutating `units` in place.

        Only SetupError escapes; any other failure of a unit is recorded as
        that unit's error-sentinel result.
        """
        order = order or ProcessingOrder(self.config.order)
        retry = self.config.retry_failures if retry_failures is None else retry_failures
        ctx = context or UnitContext()
        log = _logger.with_context(ctx)
        summary = RunSummary(run_id=ctx.run_id, total=len(units))
        started = self._clock()

        log.info(
            "batch.started",
            total=len(units),
            order=order.value,
            retry_failures=retry,
            pending=sum(1 for u in units if self.should_process(u, retry)),
        )

        for index in order_indices(len(units), order):
            unit = units[index]
            unit_ctx = ctx.with_unit(unit.id)

            reason = self.skip_reason(unit, retry)
            if reason is not None:
                summary.skipped += 1
                log.debug("batch.unit_skipped", unit_id=unit.id, reason=reason.value)
                await self.diagnostics.emit(
                    DiagnosticEvent.UNIT_SKIPPED, unit_ctx, reason=reason.value
                )
                self._notify(unit, None)
                continue

            outcome = await self._process_isolated(unit, unit_ctx)
            unit.result = outcome.payload
            self._count(summary, unit, outcome)

            await self._checkpoint(units, summary, unit_ctx)
            self._notify(unit, outcome)

            if self.config.inter_unit_delay > 0:
                log.debug("batch.delay", seconds=self.config.inter_unit_delay)
                await self._sleep(self.config.inter_unit_delay)

        summary.duration_seconds = self._clock() - started
        log.info("batch.completed", **summary.to_dict())
        return summary

    async def _process_isolated(self, unit: WorkUnit, context: UnitContext) -> UnitOutcome:
        log = _logger.with_context(context)
        log.info("batch.unit_started", label=unit.display_name)
        try:
            return await self.processor.process(unit, context)
        except SetupError:
            raise
        except Exception as e:
            log.exception("batch.unit_error", error=describe_error(e))
            return UnitOutcome(
                succeeded=False,
                payload=self.sentinel.format(1, describe_error(e)),
                attempts_used=1,
            )

    def _count(self, summary: RunSummary, unit: WorkUnit, outcome: UnitOutcome) -> None:
        summary.processed += 1
        summary.total_attempts += outcome.attempts_used
        if outcome.succeeded:
            summary.succeeded += 1
            if outcome.soft:
                summary.soft_successes += 1
            _logger.info(
                "batch.unit_succeeded",
                unit_id=unit.id,
                attempts=outcome.attempts_used,
                soft=outcome.soft,
                length=len(outcome.payload),
            )
        else:
            summary.failed += 1
            summary.failed_ids.append(unit.id)
            _logger.warning(
                "batch.unit_failed",
                unit_id=unit.id,
                attempts=outcome.attempts_used,
                result=outcome.payload,
            )

    async def _checkpoint(
        self, units: list[WorkUnit], summary: RunSummary, context: UnitContext
    ) -> None:
        if self.checkpoint is None:
            return
        try:
            await self.checkpoint(units)
        except (OSError, PromptBatchError) as e:
            summary.checkpoint_failures += 1
            _logger.with_context(context).error(
                "batch.checkpoint_failed", error=describe_error(e)
            )

    def _notify(self, unit: WorkUnit, outcome: UnitOutcome | None) -> None:
        if self.on_unit_done is not None:
            self.on_unit_done(unit, outcome)
