"""Completion detection and session integrity checks."""

from promptbatch.detection.completion import (
    CompletionDetector,
    CompletionSignal,
    DetectionResult,
    DetectionSession,
    DetectionStatus,
    SignalKind,
)
from promptbatch.detection.integrity import ContextToken, SessionIntegrityGuard
from promptbatch.detection.upload import UploadProbe, build_upload_detector

__all__ = [
    "CompletionDetector",
    "CompletionSignal",
    "ContextToken",
    "DetectionResult",
    "DetectionSession",
    "DetectionStatus",
    "SessionIntegrityGuard",
    "SignalKind",
    "UploadProbe",
    "build_upload_detector",
]
