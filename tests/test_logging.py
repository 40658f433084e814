"""Tests for promptbatch.core.logging."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from promptbatch.core.logging import (
    BatchLogger,
    UnitContext,
    _sanitize_event_dict,
    configure_logging,
    get_current_log_path,
    get_logger,
)


class TestUnitContext:
    def test_run_id_generated(self) -> None:
        assert len(UnitContext().run_id) == 12
        assert UnitContext().run_id != UnitContext().run_id

    def test_with_unit_clears_attempt_and_step(self) -> None:
        ctx = UnitContext(run_id="r").with_unit(1).with_attempt(2).with_step("detect")
        fresh = ctx.with_unit(2)

        assert fresh.unit_id == 2
        assert fresh.attempt is None
        assert fresh.step is None
        assert ctx.attempt == 2

    def test_to_dict_omits_unset_fields(self) -> None:
        assert UnitContext(run_id="r").to_dict() == {"run_id": "r"}
        assert UnitContext(run_id="r", unit_id=3, attempt=1, step="upload").to_dict() == {
            "run_id": "r",
            "unit_id": 3,
            "attempt": 1,
            "step": "upload",
        }

    def test_slug(self) -> None:
        ctx = UnitContext(run_id="r1").with_unit(3).with_attempt(2).with_step("detect")
        assert ctx.slug() == "r1-u3-a2-detect"
        assert UnitContext(run_id="r1").slug() == "r1"


class TestSanitize:
    def test_redacts_sensitive_keys(self) -> None:
        result = _sanitize_event_dict(
            None,
            "info",
            {
                "event": "x",
                "auth_token": "abc",
                "Cookie": "c",
                "headers": {"Authorization": "Bearer z", "accept": "json"},
                "unit_id": 3,
            },
        )

        assert result["auth_token"] == "[REDACTED]"
        assert result["Cookie"] == "[REDACTED]"
        assert result["headers"] == {"Authorization": "[REDACTED]", "accept": "json"}
        assert result["unit_id"] == 3


class TestBatchLogger:
    def test_bind_returns_new_logger(self) -> None:
        base = get_logger("batch")
        bound = base.bind(unit_id=1)

        assert isinstance(bound, BatchLogger)
        assert bound._context == {"component": "batch", "unit_id": 1}
        assert base._context == {"component": "batch"}
        assert bound.unbind("unit_id")._context == {"component": "batch"}

    def test_with_context(self) -> None:
        log = get_logger("retry").with_context(UnitContext(run_id="r", unit_id=2))
        assert log._context == {"component": "retry", "run_id": "r", "unit_id": 2}
        assert get_logger("retry").with_context(None)._context == {"component": "retry"}


class TestConfigureLogging:
    def test_json_to_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(level="INFO", format="json", file_path=log_file)

        get_logger("batch").info("batch.started", total=3, password="hunter2")
        get_logger("batch").debug("batch.hidden")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event"] == "batch.started"
        assert entry["component"] == "batch"
        assert entry["total"] == 3
        assert entry["password"] == "[REDACTED]"
        assert entry["level"] == "info"
        assert "timestamp" in entry
        assert get_current_log_path() == log_file

    def test_json_to_file_has_no_stream_handler(self, tmp_path: Path) -> None:
        configure_logging(format="json", file_path=tmp_path / "run.log")

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1

    def test_both_requires_file(self) -> None:
        with pytest.raises(ValueError, match="file_path is required"):
            configure_logging(format="both")

    def test_without_timestamps(self, tmp_path: Path) -> None:
        log_file = tmp_path / "run.log"
        configure_logging(format="json", file_path=log_file, include_timestamps=False)

        get_logger("x").warning("x.event")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
        assert "timestamp" not in entry
        configure_logging()
        assert get_current_log_path() is None
