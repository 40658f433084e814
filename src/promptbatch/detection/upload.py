"""Upload completion detection.

Uploads reuse CompletionDetector with a single all-of signal: no progress
indicator is visible AND at least one expected attachment indicator is. No
control is being awaited, so there is no action-control signal.

The content probe reports the attachment summary only while nothing is busy,
which keeps the stability fallback from firing mid-upload.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from promptbatch.core.config import UploadDetectionConfig
from promptbatch.core.logging import get_logger
from promptbatch.detection.completion import (
    Clock,
    CompletionDetector,
    CompletionSignal,
    Sleep,
    SignalKind,
)

if TYPE_CHECKING:
    from promptbatch.surface.base import InteractionSurface

_logger = get_logger("detector.upload")


def upload_multiplier(config: UploadDetectionConfig, file_count: int) -> float:
    """Timing multiplier for a number of attachments, capped at max_multiplier."""
    return min(max(file_count, 1), config.max_multiplier)


def build_upload_detector(
    surface: InteractionSurface,
    config: UploadDetectionConfig,
    file_count: int,
    *,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> tuple[CompletionDetector, list[CompletionSignal], UploadProbe]:
    """Build a detector, its signal list and content probe for one upload.

    Args:
        surface: The interaction surface the files were attached on.
        config: Upload timing; scaled by the attachment count.
        file_count: Number of files attached.
        clock: Time source for the detector.
        sleep: Awaitable delay for the detector.

    Returns:
        (detector, signals, content_probe) ready for `detector.wait(...)`.
    """
    multiplier = upload_multiplier(config, file_count)
    scaled = config.scaled(multiplier)
    detector = CompletionDetector(scaled, name="upload", clock=clock, sleep=sleep)

    async def upload_settled() -> bool:
        if await surface.probe_upload_busy():
            return False
        return await surface.probe_upload_ready()

    signals = [CompletionSignal("upload_settled", upload_settled, SignalKind.COMPLETE)]
    _logger.debug(
        "upload.detector_built",
        file_count=file_count,
        multiplier=multiplier,
        timeout=scaled.timeout,
    )
    return detector, signals, UploadProbe(surface)


class UploadProbe:
    """Content probe for uploads: attachment summary, blank while busy."""

    def __init__(self, surface: InteractionSurface) -> None:
        self._surface = surface

    async def __call__(self) -> str:
        if await self._surface.probe_upload_busy():
            return ""
        return await self._surface.probe_attachment_summary()
