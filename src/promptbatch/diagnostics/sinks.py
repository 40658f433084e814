"""Diagnostics sink implementations."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Protocol

from promptbatch.core.logging import get_logger
from promptbatch.diagnostics.base import (
    FAILURE_EVENTS,
    DiagnosticEvent,
    DiagnosticRecord,
)

_logger = get_logger("diagnostics.sinks")

_WARNING_EVENTS = FAILURE_EVENTS | {DiagnosticEvent.RECOVERY_FAILED}


class LogSink:
    """Writes every diagnostic record to the structured log."""

    def __init__(self, events: frozenset[DiagnosticEvent] | None = None) -> None:
        self._events = events if events is not None else frozenset(DiagnosticEvent)

    @property
    def subscribed_events(self) -> frozenset[DiagnosticEvent]:
        return self._events

    async def record(self, record: DiagnosticRecord) -> None:
        data = record.to_dict()
        event = data.pop("event")
        if record.event in _WARNING_EVENTS:
            _logger.warning(event, **data)
        else:
            _logger.debug(event, **data)


class Screenshotter(Protocol):
    async def screenshot(self, name: str) -> Path | None: ...


class ScreenshotSink:
    """Captures a screenshot of the surface on failure transitions.

    The screenshot name carries the unit, attempt and step from the record's
    context, so files from different units never collide. Only the most
    recent `keep` paths are remembered; the files themselves stay on disk.
    """

    def __init__(
        self,
        surface: Screenshotter,
        events: frozenset[DiagnosticEvent] = FAILURE_EVENTS,
        keep: int = 20,
    ) -> None:
        self._surface = surface
        self._events = events
        self.captured: deque[Path] = deque(maxlen=keep)

    @property
    def subscribed_events(self) -> frozenset[DiagnosticEvent]:
        return self._events

    async def record(self, record: DiagnosticRecord) -> None:
        prefix = record.context.slug() if record.context else "run"
        name = f"{prefix}-{record.event.value.replace('.', '-')}"
        path = await self._surface.screenshot(name)
        if path is not None:
            self.captured.append(path)
            _logger.debug("diagnostics.screenshot_saved", path=str(path))
