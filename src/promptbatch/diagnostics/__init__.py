"""Observational diagnostics: state-transition records routed to sinks."""

from promptbatch.diagnostics.base import (
    FAILURE_EVENTS,
    DiagnosticEvent,
    DiagnosticRecord,
    Diagnostics,
    DiagnosticSink,
)
from promptbatch.diagnostics.sinks import LogSink, ScreenshotSink

__all__ = [
    "FAILURE_EVENTS",
    "DiagnosticEvent",
    "DiagnosticRecord",
    "DiagnosticSink",
    "Diagnostics",
    "LogSink",
    "ScreenshotSink",
]
