"""Tests for the diagnostics hub and its sinks."""

from __future__ import annotations

from pathlib import Path

import pytest

from promptbatch.core.logging import UnitContext
from promptbatch.diagnostics import (
    FAILURE_EVENTS,
    DiagnosticEvent,
    DiagnosticRecord,
    DiagnosticSink,
    Diagnostics,
    LogSink,
    ScreenshotSink,
)


class RecordingSink:
    def __init__(self, events: frozenset[DiagnosticEvent]) -> None:
        self._events = events
        self.records: list[DiagnosticRecord] = []

    @property
    def subscribed_events(self) -> frozenset[DiagnosticEvent]:
        return self._events

    async def record(self, record: DiagnosticRecord) -> None:
        self.records.append(record)


class FailingSink(RecordingSink):
    async def record(self, record: DiagnosticRecord) -> None:
        raise RuntimeError("sink broke")


class FakeScreenshotter:
    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory
        self.names: list[str] = []

    async def screenshot(self, name: str) -> Path | None:
        self.names.append(name)
        return None if self.directory is None else self.directory / f"{name}.png"


class TestDiagnosticRecord:
    def test_to_dict_flattens_context_and_details(self) -> None:
        ctx = UnitContext(run_id="r", unit_id=2)
        record = DiagnosticRecord(DiagnosticEvent.BACKOFF, ctx, details={"delay": 5.0})

        data = record.to_dict()

        assert data["event"] == "retry.backoff"
        assert data["delay"] == 5.0
        assert data["run_id"] == "r"
        assert data["unit_id"] == 2
        assert "timestamp" in data


class TestDiagnosticsHub:
    @pytest.mark.asyncio
    async def test_routes_by_subscription(self) -> None:
        failures = RecordingSink(FAILURE_EVENTS)
        everything = RecordingSink(frozenset(DiagnosticEvent))
        hub = Diagnostics([failures])
        hub.add_sink(everything)

        await hub.emit(DiagnosticEvent.UNIT_SUCCEEDED)
        await hub.emit(DiagnosticEvent.UNIT_FAILED, reason="x")

        assert hub.sink_count == 2
        assert [r.event for r in failures.records] == [DiagnosticEvent.UNIT_FAILED]
        assert len(everything.records) == 2
        assert failures.records[0].details == {"reason": "x"}

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_stop_others(self) -> None:
        after = RecordingSink(frozenset(DiagnosticEvent))
        hub = Diagnostics([FailingSink(frozenset(DiagnosticEvent)), after])

        await hub.emit(DiagnosticEvent.ATTEMPT_FAILED)

        assert len(after.records) == 1

    def test_sinks_satisfy_protocol(self) -> None:
        assert isinstance(LogSink(), DiagnosticSink)
        assert isinstance(ScreenshotSink(FakeScreenshotter()), DiagnosticSink)


class TestScreenshotSink:
    @pytest.mark.asyncio
    async def test_names_carry_context(self, tmp_path: Path) -> None:
        shooter = FakeScreenshotter(tmp_path)
        sink = ScreenshotSink(shooter)
        hub = Diagnostics([sink])
        ctx = UnitContext(run_id="r1").with_unit(3).with_attempt(2).with_step("detect")

        await hub.emit(DiagnosticEvent.DETECTION_TIMEOUT, ctx)
        await hub.emit(DiagnosticEvent.UNIT_SUCCEEDED, ctx)

        assert shooter.names == ["r1-u3-a2-detect-detection-timeout"]
        assert list(sink.captured) == [tmp_path / "r1-u3-a2-detect-detection-timeout.png"]

    @pytest.mark.asyncio
    async def test_no_context_and_disabled_capture(self) -> None:
        shooter = FakeScreenshotter()
        sink = ScreenshotSink(shooter)

        await sink.record(DiagnosticRecord(DiagnosticEvent.UNIT_FAILED))

        assert shooter.names == ["run-unit-failed"]
        assert not sink.captured

    @pytest.mark.asyncio
    async def test_only_recent_paths_are_kept(self, tmp_path: Path) -> None:
        sink = ScreenshotSink(FakeScreenshotter(tmp_path), keep=2)

        for unit_id in (1, 2, 3):
            ctx = UnitContext(run_id="r1").with_unit(unit_id)
            await sink.record(DiagnosticRecord(DiagnosticEvent.UNIT_FAILED, ctx))

        assert [p.name for p in sink.captured] == [
            "r1-u2-unit-failed.png",
            "r1-u3-unit-failed.png",
        ]


class TestLogSink:
    @pytest.mark.asyncio
    async def test_custom_subscription(self) -> None:
        sink = LogSink(frozenset({DiagnosticEvent.UNIT_FAILED}))
        assert sink.subscribed_events == frozenset({DiagnosticEvent.UNIT_FAILED})

        await sink.record(
            DiagnosticRecord(DiagnosticEvent.UNIT_FAILED, UnitContext(run_id="r"))
        )
