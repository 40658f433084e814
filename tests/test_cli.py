"""Tests for promptbatch CLI commands."""

from __future__ import annotations

import importlib
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from promptbatch import __version__
from promptbatch.cli import app
from promptbatch.cli.commands.run import apply_overrides, build_processor
from promptbatch.core.checkpoint import ErrorSentinel
from promptbatch.core.config import AppConfig
from promptbatch.core.errors import BrowserStartupError, SurfaceError
from promptbatch.execution import RunSummary
from promptbatch.state import CsvWorkQueue
from tests.helpers import FakeSurface

runner = CliRunner()

# The commands package re-exports the `run` function under the module's name
run_module = importlib.import_module("promptbatch.cli.commands.run")


@pytest.fixture
def status_csv(tmp_path: Path) -> Path:
    path = tmp_path / "status.csv"
    path.write_text(
        "name,prompt,response\n"
        "a,first,\n"
        "b,second,Answer\n"
        'c,third,"ERROR (after 4 attempts): SurfaceTimeout: slow"\n',
        encoding="utf-8",
    )
    return path


class TestVersionCommand:
    def test_version_shows_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"promptbatch v{__version__}" in result.stdout

    def test_invalid_log_level(self, queue_csv: Path) -> None:
        result = runner.invoke(app, ["--log-level", "LOUD", "status", str(queue_csv)])
        assert result.exit_code != 0


class TestRunCommand:
    def test_missing_queue_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["run", str(tmp_path / "absent.csv")])
        assert result.exit_code == 1
        assert "Queue file not found" in result.stdout

    def test_invalid_config(self, queue_csv: Path, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("retry:\n  max_attempts: 0\n", encoding="utf-8")

        result = runner.invoke(app, ["run", str(queue_csv), "--config", str(bad)])

        assert result.exit_code == 1
        assert "Error loading config" in result.stdout

    def test_json_summary(self, queue_csv: Path) -> None:
        summary = RunSummary(run_id="r1", total=3, processed=2, succeeded=2, skipped=1)
        with patch.object(
            run_module, "_run_batch", new=AsyncMock(return_value=summary)
        ) as run_batch:
            result = runner.invoke(app, ["run", str(queue_csv), "--json", "--reverse"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["run_id"] == "r1"
        assert data["succeeded"] == 2
        args = run_batch.await_args.args
        assert args[2].value == "reverse"
        assert args[3] is None
        assert args[4] is False

    def test_summary_panel(self, queue_csv: Path) -> None:
        summary = RunSummary(
            run_id="r2", total=3, processed=2, succeeded=1, failed=1, failed_ids=[2]
        )
        with patch.object(
            run_module, "_run_batch", new=AsyncMock(return_value=summary)
        ):
            result = runner.invoke(app, ["run", str(queue_csv), "--no-retry"])

        assert result.exit_code == 0
        assert "Run Summary" in result.stdout
        assert "Failed units: 2" in result.stdout

    def test_quiet_prints_nothing_on_success(self, queue_csv: Path) -> None:
        summary = RunSummary(run_id="r3", total=3)
        with patch.object(
            run_module, "_run_batch", new=AsyncMock(return_value=summary)
        ):
            result = runner.invoke(app, ["--quiet", "run", str(queue_csv)])

        assert result.exit_code == 0
        assert result.stdout.strip() == ""

    def test_interrupt_exits_130(self, queue_csv: Path) -> None:
        with patch.object(
            run_module,
            "_run_batch",
            new=AsyncMock(side_effect=KeyboardInterrupt),
        ):
            result = runner.invoke(app, ["run", str(queue_csv)])

        assert result.exit_code == 130
        assert "Interrupted" in result.stdout

    def test_browser_launch_failure(self, queue_csv: Path) -> None:
        surface = MagicMock()
        surface.open = AsyncMock(side_effect=BrowserStartupError("no browser installed"))
        surface.close = AsyncMock()
        with patch(
            "promptbatch.surface.playwright_surface.PlaywrightSurface",
            return_value=surface,
        ):
            result = runner.invoke(app, ["run", str(queue_csv), "--headless"])

        assert result.exit_code == 1
        assert "Run could not start" in result.stdout
        surface.close.assert_not_awaited()

    def test_chat_never_ready(self, queue_csv: Path) -> None:
        surface = MagicMock()
        surface.open = AsyncMock()
        surface.ensure_ready = AsyncMock(side_effect=SurfaceError("textarea missing"))
        surface.close = AsyncMock()
        with patch(
            "promptbatch.surface.playwright_surface.PlaywrightSurface",
            return_value=surface,
        ):
            result = runner.invoke(app, ["run", str(queue_csv)])

        assert result.exit_code == 1
        assert "Run could not start" in result.stdout
        surface.close.assert_awaited_once()


class TestRunWiring:
    def test_apply_overrides(self) -> None:
        config = AppConfig()

        assert apply_overrides(config) is config
        updated = apply_overrides(config, headless=True, url="https://chat.example/")
        assert updated.surface.headless is True
        assert updated.surface.url == "https://chat.example/"
        assert config.surface.headless is False

    def test_build_processor_uses_queue_directory(
        self, queue_csv: Path, surface: FakeSurface
    ) -> None:
        config = AppConfig()
        queue = CsvWorkQueue(queue_csv)

        processor = build_processor(queue, config, surface, ErrorSentinel())

        orchestrator = processor.processor
        assert orchestrator.exchange.base_dir == queue_csv.resolve().parent
        assert processor.checkpoint == queue.save
        assert processor.config is config.batch


class TestStatusCommand:
    def test_counts_table(self, status_csv: Path) -> None:
        result = runner.invoke(app, ["status", str(status_csv)])

        assert result.exit_code == 0
        assert "pending" in result.stdout
        assert "Failed Units" in result.stdout
        assert "SurfaceTimeout" in result.stdout

    def test_json(self, status_csv: Path) -> None:
        result = runner.invoke(app, ["status", str(status_csv), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["total"] == 3
        assert data["counts"] == {"pending": 1, "done": 1, "failed": 1}
        assert data["failed"][0]["id"] == 3

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["status", str(tmp_path / "absent.csv")])
        assert result.exit_code == 1


class TestValidateCommand:
    def test_reports_missing_attachments(self, queue_csv: Path) -> None:
        result = runner.invoke(app, ["validate", str(queue_csv)])

        assert result.exit_code == 0
        assert "Input column 'prompt' present" in result.stdout
        assert "reference missing files" in result.stdout
        assert "missing.pdf" in result.stdout

    def test_all_attachments_resolve(self, status_csv: Path) -> None:
        result = runner.invoke(app, ["validate", str(status_csv)])

        assert result.exit_code == 0
        assert "All attachment references resolve" in result.stdout
        assert "Optional column 'file_paths' not found" in result.stdout

    def test_missing_input_column(self, tmp_path: Path) -> None:
        path = tmp_path / "q.csv"
        path.write_text("name,question\nx,hi\n", encoding="utf-8")

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1
        assert "prompt" in result.stdout

    def test_config_column_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "q.csv"
        path.write_text("question\nhi\n", encoding="utf-8")
        config = tmp_path / "promptbatch.yaml"
        config.write_text("columns:\n  input: question\n", encoding="utf-8")

        result = runner.invoke(app, ["validate", str(path), "-c", str(config)])

        assert result.exit_code == 0
        assert "Input column 'question' present" in result.stdout
