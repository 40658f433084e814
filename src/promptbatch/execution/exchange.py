"""One attempt at one unit: enter text, upload, send, await the reply."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from promptbatch.core.checkpoint import WorkUnit
from promptbatch.core.config import DetectionConfig, UploadDetectionConfig
from promptbatch.core.errors import SessionLostError
from promptbatch.core.logging import UnitContext, get_logger
from promptbatch.detection.completion import (
    CompletionDetector,
    CompletionSignal,
    DetectionResult,
    DetectionStatus,
    SignalKind,
)
from promptbatch.detection.integrity import ContextToken, SessionIntegrityGuard
from promptbatch.detection.upload import build_upload_detector, upload_multiplier
from promptbatch.diagnostics.base import Diagnostics
from promptbatch.surface.base import InteractionSurface
from promptbatch.surface.files import resolve_attachments

_logger = get_logger("exchange")


def response_signals(surface: InteractionSurface) -> list[CompletionSignal]:
    """Reply completion signals, strongest first."""
    return [
        CompletionSignal("action_control", surface.probe_action_control_idle),
        CompletionSignal("secondary_marker", surface.probe_secondary_marker),
        CompletionSignal(
            "partial_affordance", surface.probe_partial_affordance, SignalKind.IMMINENT
        ),
    ]


class Exchange:
    """Performs a single attempt of a unit against the surface.

    Steps, in order: capture the guard baseline, enter the text, attach and
    await uploads, re-verify the text, check the context, send, then wait
    for the reply. Raises on structural failures; returns the detector's
    result otherwise, leaving the verdict to the retry orchestrator.
    """

    def __init__(
        self,
        surface: InteractionSurface,
        guard: SessionIntegrityGuard,
        *,
        response_config: DetectionConfig,
        upload_config: UploadDetectionConfig,
        diagnostics: Diagnostics | None = None,
        base_dir: Path | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.surface = surface
        self.guard = guard
        self.response_config = response_config
        self.upload_config = upload_config
        self.diagnostics = diagnostics
        self.base_dir = base_dir
        self._clock = clock
        self._sleep = sleep
        self.detector = CompletionDetector(
            response_config, name="response", clock=clock, sleep=sleep
        )

    async def run(self, unit: WorkUnit, context: UnitContext) -> DetectionResult:
        log = _logger.with_context(context)
        log.info("exchange.started", label=unit.display_name, length=len(unit.input))

        baseline = await self.guard.capture_baseline()

        await self.surface.submit_input(unit.input)
        log.debug("exchange.text_entered")

        await self._upload(unit, context.with_step("upload"), baseline)

        await self.surface.verify_input(unit.input)
        if await self.guard.has_diverged(baseline):
            raise SessionLostError("Conversation context lost before sending")

        await self.surface.trigger_operation()
        log.debug("exchange.sent")

        result = await self.detector.wait(
            self.surface.probe_content,
            response_signals(self.surface),
            guard=self.guard,
            baseline=baseline,
            context=context.with_step("detect"),
            diagnostics=self.diagnostics,
        )
        if result.status is not DetectionStatus.SESSION_LOST:
            # Remember where this conversation lives for later recovery
            await self.guard.remember_location()
        return result

    async def _upload(
        self, unit: WorkUnit, context: UnitContext, baseline: ContextToken
    ) -> None:
        if not unit.attachments:
            return
        log = _logger.with_context(context)
        paths = resolve_attachments(unit.attachments, self.base_dir)
        if not paths:
            log.warning("exchange.no_valid_attachments", references=unit.attachments)
            return

        await self.surface.attach_resources(paths)
        detector, signals, probe = build_upload_detector(
            self.surface,
            self.upload_config,
            len(paths),
            clock=self._clock,
            sleep=self._sleep,
        )
        result = await detector.wait(
            probe,
            signals,
            guard=self.guard,
            baseline=baseline,
            context=context,
            diagnostics=self.diagnostics,
        )
        if result.status is DetectionStatus.SESSION_LOST:
            raise SessionLostError("Conversation context lost during upload")
        if result.status is DetectionStatus.TIMEOUT:
            # Indicators could not be confirmed; the send step still decides
            log.warning("exchange.upload_unconfirmed", files=len(paths), reason=result.reason)
        else:
            log.info("exchange.upload_complete", files=len(paths))

        settle = self.upload_config.settle_seconds * upload_multiplier(
            self.upload_config, len(paths)
        )
        if settle > 0:
            await self._sleep(settle)
