"""Tests for error classification, the error sentinel and work units."""

from __future__ import annotations

import pytest

from promptbatch.core.checkpoint import (
    ErrorSentinel,
    UnitStatus,
    WorkUnit,
    count_by_status,
    parse_attachments,
)
from promptbatch.core.errors import (
    AttemptsExhaustedError,
    BrowserStartupError,
    ConfigError,
    ErrorCategory,
    PromptBatchError,
    QueueFileError,
    ResponseTimeoutError,
    SessionLostError,
    SetupError,
    SurfaceError,
    SurfaceTimeout,
    classify,
    describe_error,
)


class TestClassify:
    @pytest.mark.parametrize(
        ("exc", "category"),
        [
            (SurfaceError("x"), ErrorCategory.TRANSIENT),
            (ResponseTimeoutError("x"), ErrorCategory.TRANSIENT),
            (SessionLostError("x"), ErrorCategory.DEGRADED),
            (AttemptsExhaustedError(3, None), ErrorCategory.TERMINAL),
            (ConfigError("x"), ErrorCategory.SETUP),
            (QueueFileError("x"), ErrorCategory.SETUP),
            (BrowserStartupError("x"), ErrorCategory.SETUP),
            (TimeoutError("driver"), ErrorCategory.TRANSIENT),
            (RuntimeError("driver"), ErrorCategory.TRANSIENT),
        ],
    )
    def test_categories(self, exc: BaseException, category: ErrorCategory) -> None:
        assert classify(exc) is category

    def test_hierarchy(self) -> None:
        assert issubclass(ResponseTimeoutError, SurfaceTimeout)
        assert issubclass(SessionLostError, SurfaceError)
        assert issubclass(ConfigError, SetupError)
        assert issubclass(SetupError, PromptBatchError)


class TestDescribeError:
    def test_type_and_message(self) -> None:
        assert describe_error(SurfaceTimeout(" slow ")) == "SurfaceTimeout: slow"

    def test_empty_message(self) -> None:
        assert describe_error(RuntimeError()) == "RuntimeError"

    def test_attempts_exhausted_message(self) -> None:
        exc = AttemptsExhaustedError(4, SessionLostError("reset"))
        assert str(exc) == "failed after 4 attempts: SessionLostError: reset"
        assert str(AttemptsExhaustedError(1, None)).endswith("no error recorded")


class TestErrorSentinel:
    def test_format(self) -> None:
        sentinel = ErrorSentinel()
        assert sentinel.format(1, "RuntimeError: boom") == (
            "ERROR (after 1 attempt): RuntimeError: boom"
        )
        assert sentinel.format(4, "SurfaceTimeout: slow").startswith(
            "ERROR (after 4 attempts)"
        )

    def test_record_match_is_default(self) -> None:
        sentinel = ErrorSentinel()
        assert sentinel.match == "record"
        assert sentinel.matches("ERROR (after 4 attempts): x")
        assert sentinel.matches("  ERROR (after 1 attempt): x")
        assert not sentinel.matches("No ERROR here")
        assert not sentinel.matches(None)
        assert not sentinel.matches("")

    def test_reply_starting_with_marker_is_not_an_error(self) -> None:
        reply = "ERROR handling in Python relies on exceptions."
        assert not ErrorSentinel().matches(reply)
        assert WorkUnit(id=1, result=reply).status() is UnitStatus.DONE

    def test_prefix_match(self) -> None:
        sentinel = ErrorSentinel(match="prefix")
        assert sentinel.matches("  ERROR: x")
        assert sentinel.matches("ERROR (after 2 attempts): x")
        assert not sentinel.matches("No ERROR here")

    def test_contains_match(self) -> None:
        sentinel = ErrorSentinel(marker="FAILED", match="contains")
        assert sentinel.matches("the run FAILED")
        assert not sentinel.matches("fine")

    def test_formatted_result_always_matches(self) -> None:
        for sentinel in (
            ErrorSentinel(),
            ErrorSentinel("FAILED", "prefix"),
            ErrorSentinel("FAILED", "contains"),
        ):
            assert sentinel.matches(sentinel.format(2, "x"))


class TestWorkUnit:
    def test_status_derivation(self) -> None:
        assert WorkUnit(id=1).status() is UnitStatus.PENDING
        assert WorkUnit(id=1, result=" \n").status() is UnitStatus.PENDING
        assert WorkUnit(id=1, result="Answer").status() is UnitStatus.DONE
        assert WorkUnit(id=1, result="ERROR (after 4 attempts): x").status() is (
            UnitStatus.FAILED
        )

    def test_display_name(self) -> None:
        assert WorkUnit(id=7, label="beta").display_name == "beta"
        assert WorkUnit(id=7).display_name == "unit 7"

    def test_ids_are_one_based(self) -> None:
        with pytest.raises(ValueError):
            WorkUnit(id=0)

    def test_count_by_status_includes_every_status(self) -> None:
        units = [WorkUnit(id=1), WorkUnit(id=2, result="ok"), WorkUnit(id=3, result="ok")]
        assert count_by_status(units) == {
            UnitStatus.PENDING: 1,
            UnitStatus.DONE: 2,
            UnitStatus.FAILED: 0,
        }


class TestParseAttachments:
    def test_split_and_trim(self) -> None:
        assert parse_attachments(" a.pdf | b.png ||  ") == ["a.pdf", "b.png"]

    def test_empty_cell(self) -> None:
        assert parse_attachments(None) == []
        assert parse_attachments("") == []

    def test_custom_delimiter(self) -> None:
        assert parse_attachments("a;b", ";") == ["a", "b"]
