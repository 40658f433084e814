"""Pytest fixtures for promptbatch tests."""

import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from promptbatch.core.checkpoint import WorkUnit

from tests.helpers import FakeClock, FakeSurface


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset CLI logging state, structlog and root handlers around each test."""
    from promptbatch.cli import helpers as cli_helpers

    cli_helpers.reset_logging_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_logging_state()
    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def surface(clock: FakeClock) -> FakeSurface:
    return FakeSurface(clock)


@pytest.fixture
def units() -> list[WorkUnit]:
    """Three pending units."""
    return [
        WorkUnit(id=1, label="alpha", input="A"),
        WorkUnit(id=2, label="beta", input="B"),
        WorkUnit(id=3, label="gamma", input="C"),
    ]


@pytest.fixture
def queue_csv(tmp_path: Path) -> Path:
    """A small CSV queue with an extra column and one finished row."""
    path = tmp_path / "queue.csv"
    path.write_text(
        "name,prompt,file_paths,notes,response\n"
        "alpha,Summarize A,,keep me,\n"
        'beta,"Line one\nLine two",doc.txt | missing.pdf,second,\n'
        "gamma,Summarize C,,,Already answered\n",
        encoding="utf-8",
    )
    (tmp_path / "doc.txt").write_text("hello", encoding="utf-8")
    return path
