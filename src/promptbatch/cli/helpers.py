"""Shared utilities for promptbatch CLI commands.

- Output level and logging option state set by the global callback
- Config loading with user-facing error handling
- Work queue construction from config
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from promptbatch.core.checkpoint import ErrorSentinel
from promptbatch.core.config import AppConfig
from promptbatch.core.errors import ConfigError
from promptbatch.core.logging import configure_logging, get_logger
from promptbatch.state import CsvWorkQueue

_logger = get_logger("cli")


class ErrorMessages:
    """Constants for CLI error messages."""

    QUEUE_NOT_FOUND = "Queue file not found"
    CONFIG_LOAD_ERROR = "Error loading config"
    SETUP_FAILED = "Run could not start"


# =============================================================================
# Output level management
# =============================================================================


class OutputLevel(str, Enum):
    """Output verbosity level."""

    QUIET = "quiet"  # Minimal output (errors only)
    NORMAL = "normal"  # Default output
    VERBOSE = "verbose"  # Detailed output


_output_level: OutputLevel = OutputLevel.NORMAL


def get_output_level() -> OutputLevel:
    return _output_level


def set_output_level(level: OutputLevel) -> None:
    global _output_level
    _output_level = level


def is_verbose() -> bool:
    return _output_level == OutputLevel.VERBOSE


def is_quiet() -> bool:
    return _output_level == OutputLevel.QUIET


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """Logging options collected from the global callback.

    `explicit_level` records whether --log-level (or its env var) was given;
    otherwise the level from the config file's `logging` section applies.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    explicit_level: bool = False
    configured: bool = False


_log_config = CliLoggingConfig()


def get_log_level() -> str:
    return _log_config.level


def set_log_level(level: str) -> None:
    """Set the log level.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
    """
    _log_config.level = level.upper()  # type: ignore[assignment]
    _log_config.explicit_level = True


def get_log_file() -> Path | None:
    return _log_config.file


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def get_log_format() -> str:
    return _log_config.format


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console, config: AppConfig | None = None) -> None:
    """Configure logging from the global CLI options.

    Options given on the command line win; anything left unset falls back to
    the `logging` section of the config, when one is passed. Only configures
    once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return

    level = _log_config.level
    file_path = _log_config.file
    fmt = _log_config.format
    max_size, backups, timestamps = 50, 5, True
    if config is not None:
        log_cfg = config.logging
        if not _log_config.explicit_level and not is_verbose():
            level = log_cfg.level
        file_path = file_path or log_cfg.file_path
        if fmt == "console":
            fmt = log_cfg.format
        max_size, backups = log_cfg.max_file_size_mb, log_cfg.backup_count
        timestamps = log_cfg.include_timestamps
    if is_verbose() and not _log_config.explicit_level:
        level = "DEBUG"

    try:
        configure_logging(
            level=level,
            format=fmt,
            file_path=file_path,
            max_file_size_mb=max_size,
            backup_count=backups,
            include_timestamps=timestamps,
        )
        _log_config.configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset logging and output state (primarily for testing)."""
    global _log_config, _output_level
    _log_config = CliLoggingConfig()
    _output_level = OutputLevel.NORMAL


# =============================================================================
# Config and queue helpers
# =============================================================================


def load_config(path: Path | None, console: Console) -> AppConfig:
    """Load config from YAML, or return defaults when no path is given.

    Raises:
        typer.Exit(1): If the config cannot be loaded.
    """
    if path is None:
        return AppConfig()
    try:
        return AppConfig.from_yaml(path)
    except ConfigError as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {e}")
        raise typer.Exit(1) from None


def sentinel_from_config(config: AppConfig) -> ErrorSentinel:
    return ErrorSentinel(
        marker=config.batch.error_sentinel, match=config.batch.sentinel_match
    )


def open_queue(queue_file: Path, config: AppConfig, console: Console) -> CsvWorkQueue:
    """Build the CSV queue for a file, exiting with 1 if the file is missing."""
    queue = CsvWorkQueue(queue_file, config.columns)
    if not queue.exists():
        console.print(f"[red]{ErrorMessages.QUEUE_NOT_FOUND}:[/red] {queue_file}")
        raise typer.Exit(1)
    return queue
