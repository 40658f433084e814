"""Bounded retry with exponential backoff and recovery between attempts.

Retries are reserved for structural failures: lost conversation context and
errors raised by the interaction layer. A slow reply that still produced
content is accepted as a soft success and never retried, since retrying
duplicates remote work.

Example usage:
    orchestrator = RetryOrchestrator(
        surface, config.retry, exchange=exchange, guard=guard, sentinel=sentinel,
    )
    outcome = await orchestrator.process(unit, context)
    if not outcome.succeeded:
        print(outcome.payload)  # "ERROR (after 4 attempts): SurfaceTimeout: ..."

`execute()` is the generic form: it retries any awaitable attempt function
and raises AttemptsExhaustedError when every attempt failed.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from promptbatch.core.checkpoint import DEFAULT_SENTINEL, ErrorSentinel, WorkUnit
from promptbatch.core.config import RetryConfig
from promptbatch.core.errors import (
    AttemptsExhaustedError,
    ErrorCategory,
    ResponseTimeoutError,
    SessionLostError,
    SetupError,
    classify,
    describe_error,
)
from promptbatch.core.logging import UnitContext, get_logger
from promptbatch.detection.completion import DetectionResult, DetectionStatus
from promptbatch.detection.integrity import SessionIntegrityGuard
from promptbatch.diagnostics.base import DiagnosticEvent, Diagnostics
from promptbatch.execution.exchange import Exchange
from promptbatch.surface.base import InteractionSurface

_logger = get_logger("retry")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]

PARTIAL_REPLY_HEADER = "Partial reply before the conversation was lost:"


def backoff_delay(attempt: int, initial_delay: float, max_delay: float) -> float:
    """Delay after failed attempt `attempt` (1-based): initial * 2^(attempt-1), capped."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    # Cap the exponent; beyond this the ceiling applies anyway
    exponent = min(attempt - 1, 63)
    return float(min(initial_delay * (2**exponent), max_delay))


@dataclass
class AttemptRecord:
    """One failed attempt, kept for the unit's retry history."""

    attempt: int
    error: str
    category: ErrorCategory
    monotonic_time: float = field(default_factory=time.monotonic)


@dataclass
class RetryContext:
    """Attempt bookkeeping for one unit. Never persisted between runs.

    Attributes:
        max_attempts: Total attempts allowed, including the first.
        initial_delay: Backoff after the first failed attempt.
        max_delay: Backoff ceiling.
        attempt: Current attempt number (1-based).
        last_error: Most recent failure, if any.
        history: Every failed attempt, oldest first.
    """

    max_attempts: int
    initial_delay: float
    max_delay: float
    attempt: int = 1
    last_error: BaseException | None = None
    history: list[AttemptRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryContext:
        return cls(
            max_attempts=config.max_attempts,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
        )

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def backoff_delay(self, attempt: int | None = None) -> float:
        return backoff_delay(
            attempt if attempt is not None else self.attempt,
            self.initial_delay,
            self.max_delay,
        )

    def record_failure(self, error: BaseException) -> AttemptRecord:
        self.last_error = error
        record = AttemptRecord(
            attempt=self.attempt,
            error=describe_error(error),
            category=classify(error),
        )
        self.history.append(record)
        return record


@dataclass
class AttemptRun(Generic[T]):
    """Value returned by the successful attempt, and how many attempts it took."""

    value: T
    attempts: int


@dataclass
class UnitOutcome:
    """Result of processing one unit.

    Attributes:
        succeeded: Whether the unit produced a usable reply.
        payload: Reply text, or the error sentinel text on failure.
        attempts_used: Attempts consumed, including the successful one.
        detection_status: Terminal detector state of the accepted attempt.
        soft: True when the reply was accepted from a TIMEOUT with content.
    """

    succeeded: bool
    payload: str
    attempts_used: int
    detection_status: DetectionStatus | None = None
    soft: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "attempts_used": self.attempts_used,
            "detection_status": self.detection_status.value if self.detection_status else None,
            "soft": self.soft,
            "length": len(self.payload),
        }


class RetryOrchestrator:
    """Runs one unit's exchange with bounded retries and recovery.

    Between a failed attempt and the next one the orchestrator:

    1. runs the recovery action: navigates back to the last good
       conversation (or reloads) and waits for the entry point;
    2. re-captures the guard baseline;
    3. sleeps `backoff_delay(attempt)`.

    A failing recovery is logged and never escapes; the next attempt simply
    starts from whatever state the surface is in.
    """

    def __init__(
        self,
        surface: InteractionSurface,
        config: RetryConfig,
        *,
        exchange: Exchange,
        guard: SessionIntegrityGuard | None = None,
        diagnostics: Diagnostics | None = None,
        sentinel: ErrorSentinel = DEFAULT_SENTINEL,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.surface = surface
        self.config = config
        self.exchange = exchange
        self.guard = guard
        self.diagnostics = diagnostics or Diagnostics()
        self.sentinel = sentinel
        self._sleep = sleep

    async def execute(
        self,
        attempt_fn: Callable[[UnitContext], Awaitable[T]],
        context: UnitContext,
    ) -> AttemptRun[T]:
        """Call `attempt_fn` until it returns, retrying on any exception.

        SetupError is never retried and propagates unchanged.

        Raises:
            AttemptsExhaustedError: If every attempt raised.
        """
        retry = RetryContext.from_config(self.config)
        while True:
            attempt_ctx = context.with_attempt(retry.attempt)
            log = _logger.with_context(attempt_ctx)
            await self.diagnostics.emit(
                DiagnosticEvent.ATTEMPT_STARTED,
                attempt_ctx,
                max_attempts=retry.max_attempts,
            )
            try:
                value = await attempt_fn(attempt_ctx)
            except SetupError:
                raise
            except Exception as e:
                record = retry.record_failure(e)
                log.warning(
                    "retry.attempt_failed",
                    max_attempts=retry.max_attempts,
                    error=record.error,
                    category=record.category.value,
                )
                await self.diagnostics.emit(
                    DiagnosticEvent.ATTEMPT_FAILED,
                    attempt_ctx,
                    error=record.error,
                    category=record.category.value,
                )
                if retry.exhausted:
                    log.error(
                        "retry.exhausted",
                        attempts=retry.attempt,
                        errors=[r.error for r in retry.history],
                    )
                    raise AttemptsExhaustedError(retry.attempt, e) from e

                await self._recover(attempt_ctx, record.category)
                delay = retry.backoff_delay()
                log.info("retry.backoff", delay_seconds=delay, next_attempt=retry.attempt + 1)
                await self.diagnostics.emit(DiagnosticEvent.BACKOFF, attempt_ctx, delay=delay)
                await self._sleep(delay)
                retry.attempt += 1
                continue

            if retry.attempt > 1:
                log.info("retry.recovered", attempts=retry.attempt)
            return AttemptRun(value=value, attempts=retry.attempt)

    async def process(self, unit: WorkUnit, context: UnitContext | None = None) -> UnitOutcome:
        """Process one unit: exchange, detection verdict, retries.

        Never raises for transient, degraded or terminal failures; these are
        returned as an outcome whose payload carries the error sentinel.
        """
        unit_ctx = (context or UnitContext()).with_unit(unit.id)
        log = _logger.with_context(unit_ctx)

        async def attempt(attempt_ctx: UnitContext) -> DetectionResult:
            result = await self.exchange.run(unit, attempt_ctx)
            return self._accept(result)

        try:
            run = await self.execute(attempt, unit_ctx)
        except AttemptsExhaustedError as e:
            error = describe_error(e.last_error) if e.last_error else "unknown error"
            payload = self.sentinel.format(e.attempts, error)
            partial = e.last_error.partial if isinstance(e.last_error, SessionLostError) else ""
            if partial.strip():
                # Text from the last lost conversation follows the error record
                log.warning("retry.partial_kept", length=len(partial))
                payload = f"{payload}\n\n{PARTIAL_REPLY_HEADER}\n{partial}"
            await self.diagnostics.emit(
                DiagnosticEvent.UNIT_FAILED, unit_ctx, attempts=e.attempts, error=error
            )
            return UnitOutcome(succeeded=False, payload=payload, attempts_used=e.attempts)

        result = run.value
        soft = result.status is DetectionStatus.TIMEOUT
        if soft:
            log.warning(
                "retry.soft_success",
                reason=result.reason,
                length=len(result.payload),
                attempts=run.attempts,
            )
        await self.diagnostics.emit(
            DiagnosticEvent.UNIT_SUCCEEDED,
            unit_ctx,
            attempts=run.attempts,
            soft=soft,
            length=len(result.payload),
        )
        return UnitOutcome(
            succeeded=True,
            payload=result.payload,
            attempts_used=run.attempts,
            detection_status=result.status,
            soft=soft,
        )

    def _accept(self, result: DetectionResult) -> DetectionResult:
        """Turn a detection result into a return value or a retryable error."""
        if result.status is DetectionStatus.SESSION_LOST:
            raise SessionLostError(
                f"Conversation context lost while waiting ({result.reason})",
                partial=result.payload,
            )
        if result.has_payload:
            # COMPLETE, or a TIMEOUT that still produced content (soft success)
            return result
        raise ResponseTimeoutError(
            f"No reply after {result.elapsed_seconds:.0f}s ({result.reason})"
        )

    async def _recover(self, context: UnitContext, category: ErrorCategory) -> None:
        target = self.guard.last_good_location if self.guard else None
        log = _logger.with_context(context)
        log.info("retry.recovering", target=target, category=category.value)
        try:
            await self.surface.recover(target)
            if self.guard is not None:
                await self.guard.capture_baseline()
        except Exception as e:
            log.warning("retry.recovery_failed", error=describe_error(e))
            await self.diagnostics.emit(
                DiagnosticEvent.RECOVERY_FAILED, context, error=describe_error(e)
            )
