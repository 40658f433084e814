"""Diagnostics framework base types.

Diagnostics receive timestamped state-transition notifications from the
detector, the retry orchestrator and the batch processor. They are purely
observational: a sink that raises is logged and ignored, and nothing a sink
does can change the outcome of a unit.

- DiagnosticEvent enum for transition types
- DiagnosticRecord carrying the event, its UnitContext and details
- DiagnosticSink protocol for sink implementations
- Diagnostics hub routing records to subscribed sinks
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from promptbatch.core.logging import UnitContext, get_logger
from promptbatch.utils.time import utc_now

_logger = get_logger("diagnostics")


class DiagnosticEvent(str, Enum):
    """State transitions reported to diagnostics sinks."""

    # Detector terminal states
    DETECTION_COMPLETE = "detection.complete"
    DETECTION_TIMEOUT = "detection.timeout"
    DETECTION_SESSION_LOST = "detection.session_lost"

    # Retry lifecycle
    ATTEMPT_STARTED = "retry.attempt_started"
    ATTEMPT_FAILED = "retry.attempt_failed"
    BACKOFF = "retry.backoff"
    RECOVERY_FAILED = "retry.recovery_failed"

    # Unit outcomes
    UNIT_SUCCEEDED = "unit.succeeded"
    UNIT_FAILED = "unit.failed"
    UNIT_SKIPPED = "unit.skipped"


FAILURE_EVENTS = frozenset({
    DiagnosticEvent.DETECTION_TIMEOUT,
    DiagnosticEvent.DETECTION_SESSION_LOST,
    DiagnosticEvent.ATTEMPT_FAILED,
    DiagnosticEvent.UNIT_FAILED,
})


@dataclass
class DiagnosticRecord:
    """One state transition, as delivered to sinks."""

    event: DiagnosticEvent
    """The transition that occurred."""

    context: UnitContext | None = None
    """Correlation context of the unit/attempt/step, when there is one."""

    timestamp: datetime = field(default_factory=utc_now)
    """When the transition occurred (UTC)."""

    details: dict[str, Any] = field(default_factory=dict)
    """Event-specific data, e.g. reason, elapsed seconds, delay."""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "event": self.event.value,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
        if self.context is not None:
            data.update(self.context.to_dict())
        return data


@runtime_checkable
class DiagnosticSink(Protocol):
    """Protocol for diagnostics sinks (log writer, screenshot taker, ...)."""

    @property
    def subscribed_events(self) -> frozenset[DiagnosticEvent]:
        """Events this sink wants to receive."""
        ...

    async def record(self, record: DiagnosticRecord) -> None:
        """Handle one record. May raise; the hub contains the failure."""
        ...


class Diagnostics:
    """Routes diagnostic records to subscribed sinks.

    Example usage:
        diagnostics = Diagnostics([LogSink(), ScreenshotSink(surface)])
        await diagnostics.emit(DiagnosticEvent.BACKOFF, ctx, delay=10.0)
    """

    def __init__(self, sinks: list[DiagnosticSink] | None = None) -> None:
        self._sinks: list[DiagnosticSink] = list(sinks or [])

    def add_sink(self, sink: DiagnosticSink) -> None:
        self._sinks.append(sink)

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    async def emit(
        self,
        event: DiagnosticEvent,
        context: UnitContext | None = None,
        **details: Any,
    ) -> None:
        """Deliver a record to every subscribed sink.

        Sink failures are logged and never propagate.
        """
        record = DiagnosticRecord(event=event, context=context, details=details)
        for sink in self._sinks:
            if event not in sink.subscribed_events:
                continue
            try:
                await sink.record(record)
            except Exception as e:
                _logger.warning(
                    "diagnostics.sink_failed",
                    sink=type(sink).__name__,
                    diagnostic_event=event.value,
                    error=str(e),
                )
