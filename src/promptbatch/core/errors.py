"""Exception hierarchy and error classification.

All project exceptions inherit from PromptBatchError, so callers can catch
broadly (PromptBatchError) or narrowly (e.g., SessionLostError).

Errors fall into four categories that drive handling:

- TRANSIENT: the surface hiccuped (timeout, missing element). Retry.
- DEGRADED: the conversation context was lost. Recover, then retry.
- TERMINAL: attempts are exhausted. Record the error sentinel and move on.
- SETUP: the run cannot start at all. Abort with a non-zero exit.

Only SETUP errors escape a run; the other three become data in the unit's
result field.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    """How an error is handled by the orchestration layers."""

    TRANSIENT = "transient"
    """Surface hiccup; the unit is retried after backoff."""

    DEGRADED = "degraded"
    """Conversation context lost; recovery runs before the retry."""

    TERMINAL = "terminal"
    """All attempts used; the error sentinel is recorded."""

    SETUP = "setup"
    """Configuration, queue or browser problem; the run aborts."""


class PromptBatchError(Exception):
    """Base exception for all promptbatch errors."""

    category: ErrorCategory = ErrorCategory.TRANSIENT


class SurfaceError(PromptBatchError):
    """Raised when an interaction with the chat surface fails.

    Examples: an element never appeared, the send button stayed enabled after
    every send approach, the entered text did not land in the input.
    """


class SurfaceTimeout(SurfaceError):
    """Raised when a surface step did not finish within its time limit."""


class ResponseTimeoutError(SurfaceTimeout):
    """Raised when reply detection timed out without any content."""


class SessionLostError(SurfaceError):
    """Raised when the page left the conversation the exchange started in.

    Typically the surface navigated to a fresh chat mid-send, so the reply
    will never appear in the expected place.

    Attributes:
        partial: Reply text observed before the context was lost. The
            message may have been answered, so it is kept for the record.
    """

    category = ErrorCategory.DEGRADED

    def __init__(self, message: str, partial: str = "") -> None:
        super().__init__(message)
        self.partial = partial


class AttemptsExhaustedError(PromptBatchError):
    """Raised by the generic retry wrapper when every attempt failed."""

    category = ErrorCategory.TERMINAL

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = describe_error(last_error) if last_error else "no error recorded"
        super().__init__(f"failed after {attempts} attempts: {detail}")


class SetupError(PromptBatchError):
    """Raised when a run cannot start."""

    category = ErrorCategory.SETUP


class ConfigError(SetupError):
    """Raised when configuration cannot be loaded or fails validation."""


class QueueFileError(SetupError):
    """Raised when the work queue file is missing or unreadable."""


class BrowserStartupError(SetupError):
    """Raised when the browser cannot be launched or the chat never loads."""


def describe_error(exc: BaseException) -> str:
    """Render an exception as ``Type: message`` for result cells and logs."""
    message = str(exc).strip()
    if not message:
        return type(exc).__name__
    return f"{type(exc).__name__}: {message}"


def classify(exc: BaseException) -> ErrorCategory:
    """Map an exception to its handling category.

    Project exceptions carry their own category. Anything else raised from
    the interaction layer (browser driver errors, OS errors) is treated as
    transient so that it is retried rather than aborting the batch.
    """
    if isinstance(exc, PromptBatchError):
        return exc.category
    return ErrorCategory.TRANSIENT
