"""Completion detection for long-running operations on the chat surface.

The surface offers no completion event, so completion is inferred by polling
heterogeneous signals:

1. Context loss (via SessionIntegrityGuard), checked first on every tick.
2. Ordered completion signals. A COMPLETE signal (the send control is idle
   again, a "regenerate" affordance is shown) resolves the wait as soon as
   there is reply content. An IMMINENT signal (a "continue" affordance)
   does not resolve, but shortens the stability window.
3. Content stability: the reply stopped changing for the stability window.
4. Stall: past half the timeout with no growth for a long time, any
   existing content is taken rather than waiting out the deadline.
5. Deadline: the wait ends with whatever content exists.

The detector always resolves. Probe failures are swallowed and treated as
"not determined this tick".
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from promptbatch.core.config import DetectionConfig
from promptbatch.core.logging import BatchLogger, UnitContext, get_logger
from promptbatch.detection.integrity import ContextToken, SessionIntegrityGuard
from promptbatch.diagnostics.base import DiagnosticEvent, Diagnostics

_logger = get_logger("detector")

ContentProbe = Callable[[], Awaitable[str]]
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class DetectionStatus(str, Enum):
    """Terminal state of one completion wait."""

    COMPLETE = "complete"
    TIMEOUT = "timeout"
    SESSION_LOST = "session_lost"


class SignalKind(str, Enum):
    """What a firing completion signal means."""

    COMPLETE = "complete"  # operation finished
    IMMINENT = "imminent"  # not finished, but close; shortens stability window


@dataclass(frozen=True)
class CompletionSignal:
    """A named completion predicate, evaluated in list order."""

    name: str
    check: Callable[[], Awaitable[bool]]
    kind: SignalKind = SignalKind.COMPLETE


@dataclass
class DetectionResult:
    """Outcome of one completion wait."""

    status: DetectionStatus
    payload: str
    reason: str
    elapsed_seconds: float = 0.0
    polls: int = 0

    @property
    def has_payload(self) -> bool:
        return bool(self.payload.strip())

    @property
    def is_success(self) -> bool:
        """COMPLETE with content: the only unconditional success."""
        return self.status is DetectionStatus.COMPLETE and self.has_payload


@dataclass
class DetectionSession:
    """Ephemeral state of one wait. Never persisted."""

    started_at: float
    stable_since: float
    last_progress_at: float
    stable_window: float
    baseline: ContextToken | None = None
    last_observed_length: int = 0
    last_content: str = ""
    polls: int = 0
    signals_seen: list[str] = field(default_factory=list)

    def observe(self, content: str, now: float) -> bool:
        """Record a content sample; return True if its length changed."""
        length = len(content)
        changed = length != self.last_observed_length
        if changed:
            self.last_observed_length = length
            self.stable_since = now
            self.last_progress_at = now
        if content:
            self.last_content = content
        return changed


class CompletionDetector:
    """Polls a content probe and completion signals until an operation ends.

    The loop ticks every `progress_interval`. Context loss and the stall rule
    are checked on every tick. Signals and stability are evaluated once every
    `poll_interval`, starting with the first tick.

    Args:
        config: Timing parameters.
        name: Label for logs ("response", "upload").
        clock: Monotonic time source; injectable for tests.
        sleep: Awaitable delay; injectable for tests.
    """

    def __init__(
        self,
        config: DetectionConfig,
        *,
        name: str = "response",
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.name = name
        self._clock = clock
        self._sleep = sleep

    def effective_window(self, session: DetectionSession) -> float:
        """Stability window for the current content size."""
        growth = self.config.stable_window_per_kchar * session.last_observed_length / 1000
        return min(session.stable_window + growth, self.config.stable_window_max)

    async def wait(
        self,
        content_probe: ContentProbe,
        signals: Sequence[CompletionSignal] = (),
        *,
        guard: SessionIntegrityGuard | None = None,
        baseline: ContextToken | None = None,
        context: UnitContext | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> DetectionResult:
        """Wait until the operation completes, times out or loses context."""
        log = _logger.with_context(context).bind(detector=self.name)
        cfg = self.config
        start = self._clock()
        session = DetectionSession(
            started_at=start,
            stable_since=start,
            last_progress_at=start,
            stable_window=cfg.stable_window,
            baseline=baseline,
        )
        next_full = start
        log.debug(
            "detector.started",
            timeout=cfg.timeout,
            poll_interval=cfg.poll_interval,
            stable_window=cfg.stable_window,
            signals=[s.name for s in signals],
        )

        while True:
            now = self._clock()
            elapsed = now - start

            if guard is not None and baseline is not None:
                if await guard.has_diverged(baseline):
                    content = await self._probe_content(content_probe, log)
                    payload = content or session.last_content
                    return await self._finish(
                        DetectionStatus.SESSION_LOST, payload, "context_lost",
                        session, log, context, diagnostics,
                    )

            if now >= next_full:
                next_full = now + cfg.poll_interval
                session.polls += 1
                result = await self._evaluate(content_probe, signals, session, now, log)
                if result is not None:
                    status, reason = result
                    return await self._finish(
                        status, session.last_content, reason,
                        session, log, context, diagnostics,
                    )
            elif self._wants_progress_probe(session, now):
                content = await self._probe_content(content_probe, log)
                if content is not None and session.observe(content, now):
                    log.debug("detector.progress", length=session.last_observed_length)

            if self._is_stalled(session, now):
                log.info(
                    "detector.stalled",
                    elapsed=round(elapsed, 1),
                    idle=round(now - session.last_progress_at, 1),
                    length=session.last_observed_length,
                )
                return await self._finish(
                    DetectionStatus.TIMEOUT, session.last_content, "stalled",
                    session, log, context, diagnostics,
                )

            if elapsed >= cfg.timeout:
                content = await self._probe_content(content_probe, log)
                if content:
                    session.observe(content, now)
                return await self._finish(
                    DetectionStatus.TIMEOUT, session.last_content, "deadline",
                    session, log, context, diagnostics,
                )

            remaining = cfg.timeout - elapsed
            await self._sleep(min(cfg.progress_interval, remaining))

    async def _evaluate(
        self,
        content_probe: ContentProbe,
        signals: Sequence[CompletionSignal],
        session: DetectionSession,
        now: float,
        log: BatchLogger,
    ) -> tuple[DetectionStatus, str] | None:
        """One full evaluation: signals in priority order, then stability."""
        fired: CompletionSignal | None = None
        for signal in signals:
            if await self._check_signal(signal, log):
                fired = signal
                break

        content = await self._probe_content(content_probe, log)
        if content is None:
            return None
        if session.observe(content, now):
            log.debug("detector.progress", length=session.last_observed_length)

        if fired is not None:
            if fired.name not in session.signals_seen:
                session.signals_seen.append(fired.name)
                log.debug("detector.signal", signal=fired.name, kind=fired.kind.value)
            if fired.kind is SignalKind.COMPLETE and content:
                return DetectionStatus.COMPLETE, fired.name
            if fired.kind is SignalKind.IMMINENT:
                session.stable_window = min(
                    session.stable_window, self.config.imminent_stable_window
                )

        if content and now - session.stable_since >= self.effective_window(session):
            return DetectionStatus.COMPLETE, "stable_content"
        return None

    def _wants_progress_probe(self, session: DetectionSession, now: float) -> bool:
        cfg = self.config
        return (
            now - session.started_at >= cfg.progress_probe_after
            and now - session.last_progress_at >= cfg.progress_probe_idle
        )

    def _is_stalled(self, session: DetectionSession, now: float) -> bool:
        cfg = self.config
        return (
            bool(session.last_content)
            and now - session.started_at > cfg.timeout / 2
            and now - session.last_progress_at >= cfg.stall_seconds
        )

    async def _probe_content(self, probe: ContentProbe, log: BatchLogger) -> str | None:
        try:
            return await probe()
        except Exception as e:
            log.debug("detector.probe_failed", probe="content", error=str(e))
            return None

    async def _check_signal(self, signal: CompletionSignal, log: BatchLogger) -> bool:
        try:
            return bool(await signal.check())
        except Exception as e:
            log.debug("detector.probe_failed", probe=signal.name, error=str(e))
            return False

    async def _finish(
        self,
        status: DetectionStatus,
        payload: str,
        reason: str,
        session: DetectionSession,
        log: BatchLogger,
        context: UnitContext | None,
        diagnostics: Diagnostics | None,
    ) -> DetectionResult:
        result = DetectionResult(
            status=status,
            payload=payload,
            reason=reason,
            elapsed_seconds=self._clock() - session.started_at,
            polls=session.polls,
        )
        log_method = log.info if status is DetectionStatus.COMPLETE else log.warning
        log_method(
            f"detector.{status.value}",
            reason=reason,
            elapsed=round(result.elapsed_seconds, 1),
            length=len(payload),
            polls=session.polls,
        )
        if diagnostics is not None:
            event = {
                DetectionStatus.COMPLETE: DiagnosticEvent.DETECTION_COMPLETE,
                DetectionStatus.TIMEOUT: DiagnosticEvent.DETECTION_TIMEOUT,
                DetectionStatus.SESSION_LOST: DiagnosticEvent.DETECTION_SESSION_LOST,
            }[status]
            await diagnostics.emit(
                event,
                context,
                detector=self.name,
                reason=reason,
                elapsed=result.elapsed_seconds,
                length=len(payload),
            )
        return result
