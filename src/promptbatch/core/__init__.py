"""Core models: configuration, work units, errors and logging."""

from promptbatch.core.checkpoint import (
    DEFAULT_SENTINEL,
    ErrorSentinel,
    UnitStatus,
    WorkUnit,
    count_by_status,
    parse_attachments,
)
from promptbatch.core.config import (
    AppConfig,
    BatchConfig,
    DetectionConfig,
    GuardConfig,
    LogConfig,
    QueueColumns,
    RetryConfig,
    SelectorConfig,
    SurfaceConfig,
    UploadDetectionConfig,
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

__all__ = [
    "AppConfig",
    "AttemptsExhaustedError",
    "BatchConfig",
    "BrowserStartupError",
    "ConfigError",
    "DEFAULT_SENTINEL",
    "DetectionConfig",
    "ErrorCategory",
    "ErrorSentinel",
    "GuardConfig",
    "LogConfig",
    "PromptBatchError",
    "QueueColumns",
    "QueueFileError",
    "ResponseTimeoutError",
    "RetryConfig",
    "SelectorConfig",
    "SessionLostError",
    "SetupError",
    "SurfaceConfig",
    "SurfaceError",
    "SurfaceTimeout",
    "UnitStatus",
    "UploadDetectionConfig",
    "WorkUnit",
    "classify",
    "count_by_status",
    "describe_error",
    "parse_attachments",
]
