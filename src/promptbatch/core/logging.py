"""Structured logging infrastructure.

Provides structured logging using structlog with console or JSON rendering and
optional rotating file output.

Example usage:
    from promptbatch.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", format="console")

    logger = get_logger("batch")
    logger.info("batch.started", total=12)

    ctx = UnitContext(run_id="abc123").with_unit(3)
    logger.bind(**ctx.to_dict()).debug("exchange.submitted")

Correlation data (run id, unit id, attempt, step) travels as an explicit
UnitContext value. Components pass it along and bind it onto loggers; nothing
is looked up from ambient state.
"""

from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Sensitive field patterns that should never be logged
SENSITIVE_PATTERNS = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "cookie",
    "session_key",
    "authorization",
})

_current_log_path: Path | None = None


def get_current_log_path() -> Path | None:
    """Get the currently configured log file path, if file logging is on."""
    return _current_log_path


@dataclass(frozen=True)
class UnitContext:
    """Immutable correlation context for one unit of work.

    Attributes:
        run_id: Unique id of one `promptbatch run` invocation.
        unit_id: 1-based id of the unit being processed (None outside a unit).
        attempt: 1-based attempt number within the unit (None outside a retry).
        step: Current exchange step (e.g. "submit", "upload", "detect").
    """

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    unit_id: int | None = None
    attempt: int | None = None
    step: str | None = None

    def with_unit(self, unit_id: int) -> UnitContext:
        """Return a context for a new unit; attempt and step are cleared."""
        return replace(self, unit_id=unit_id, attempt=None, step=None)

    def with_attempt(self, attempt: int) -> UnitContext:
        """Return a context for a new attempt of the same unit."""
        return replace(self, attempt=attempt, step=None)

    def with_step(self, step: str) -> UnitContext:
        """Return a context with the step updated."""
        return replace(self, step=step)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging (None values excluded)."""
        result: dict[str, Any] = {"run_id": self.run_id}
        if self.unit_id is not None:
            result["unit_id"] = self.unit_id
        if self.attempt is not None:
            result["attempt"] = self.attempt
        if self.step is not None:
            result["step"] = self.step
        return result

    def slug(self) -> str:
        """Filesystem-safe identifier, used for screenshot names."""
        parts = [self.run_id]
        if self.unit_id is not None:
            parts.append(f"u{self.unit_id}")
        if self.attempt is not None:
            parts.append(f"a{self.attempt}")
        if self.step:
            parts.append(self.step)
        return "-".join(parts)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


class BatchLogger:
    """Component logger wrapping structlog.

    The underlying structlog logger is resolved on every call so that loggers
    created at import time still honour a later configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> BatchLogger:
        """Return a new logger with additional bound context."""
        new_logger = BatchLogger.__new__(BatchLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def unbind(self, *keys: str) -> BatchLogger:
        """Return a new logger with the given keys removed."""
        new_logger = BatchLogger.__new__(BatchLogger)
        new_logger._component = self._component
        new_logger._context = {k: v for k, v in self._context.items() if k not in keys}
        return new_logger

    def with_context(self, ctx: UnitContext | None) -> BatchLogger:
        """Return a logger bound to a UnitContext (no-op for None)."""
        if ctx is None:
            return self
        return self.bind(**ctx.to_dict())

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._get_logger().critical(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an error with traceback; call from within an exception handler."""
        self._get_logger().exception(event, **kw)


def _base_processors(include_timestamps: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console", "both"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 50,
    backup_count: int = 5,
    include_timestamps: bool = True,
) -> None:
    """Configure structured logging.

    Call once at startup before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable, "json" for structured. "both"
            writes console lines to stderr and the log file (requires file_path).
        file_path: Optional log file. Rotated at max_file_size_mb.
        max_file_size_mb: Maximum log file size before rotation.
        backup_count: Number of rotated files to keep.
        include_timestamps: Whether to add ISO8601 timestamps.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    global _current_log_path

    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)

    handlers: list[logging.Handler] = []

    if format in ("console", "both") or file_path is None:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(log_level)
        handlers.append(stream_handler)

    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        _current_log_path = file_path
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        handlers.append(file_handler)
    else:
        _current_log_path = None

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    processors = _base_processors(include_timestamps)
    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        # "both" still renders for the console; the file receives the same lines
        processors.append(structlog.dev.ConsoleRenderer(colors=file_path is None))

    # cache_logger_on_first_use=False so import-time loggers see this config
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> BatchLogger:
    """Get a logger for a component (e.g. "detector", "retry", "batch")."""
    return BatchLogger(component, **initial_context)
