"""Configuration models.

Every timing threshold used by detection, retry and batch pacing is a named
field here. Defaults reproduce the behaviour the tool was tuned against; a
YAML file can override any of them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from promptbatch.core.errors import ConfigError


class SelectorConfig(BaseModel):
    """CSS selectors for the chat page elements the surface interacts with."""

    textarea: str = Field(default="#prompt-textarea", description="Message input")
    send_button: str = Field(
        default="[data-testid='send-button']",
        description="Send control; disabled while a reply is generating",
    )
    upload_button: str = Field(
        default='button[aria-label="Upload files and more"]',
        description="Button opening the attachment picker",
    )
    file_input: str = Field(default='input[type="file"]', description="Hidden file input")
    assistant_message: str = Field(
        default="div[data-message-author-role='assistant']",
        description="One rendered assistant reply",
    )
    regenerate_button: str = Field(
        default='button[aria-label="Regenerate"], button:has-text("Regenerate")',
        description="Control shown once a reply has finished",
    )
    continue_button: str = Field(
        default='button:has-text("Continue")',
        description="Control shown when a reply stopped partway",
    )
    loading_indicators: list[str] = Field(
        default_factory=lambda: [
            '[role="progressbar"]',
            ".animate-spin",
            '[aria-busy="true"]',
            "circle[stroke-dashoffset][stroke-dasharray]",
        ],
        description="Elements visible while an upload is still in progress",
    )
    file_indicators: list[str] = Field(
        default_factory=lambda: [
            'img[alt*="thumbnail"]',
            '[data-testid*="attachment"]',
            '[data-testid*="file"]',
            'img[alt*="Image"]',
        ],
        description="Elements visible once an upload has been accepted",
    )


class SurfaceConfig(BaseModel):
    """Browser and page settings."""

    url: str = Field(default="https://chatgpt.com/", description="Chat page to open")
    profile_dir: Path = Field(
        default=Path(".promptbatch/profile"),
        description="Persistent browser profile; holds the signed-in session",
    )
    headless: bool = Field(default=False, description="Run the browser without a window")
    viewport_width: int = Field(default=480, gt=0)
    viewport_height: int = Field(default=853, gt=0)
    page_load_timeout: float = Field(
        default=60.0, gt=0, description="Seconds to wait for the chat entry point"
    )
    direct_insert_threshold: int = Field(
        default=300,
        ge=0,
        description="Messages longer than this are inserted directly instead of typed",
    )
    typing_delay_ms: int = Field(default=30, ge=0, description="Per-keystroke delay when typing")
    min_text_ratio: float = Field(
        default=0.9,
        gt=0,
        le=1,
        description="Fraction of the message that must be present after entry",
    )
    send_confirm_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for the send control to go busy"
    )
    screenshot_dir: Path | None = Field(
        default=None, description="Where diagnostic screenshots are written (None = disabled)"
    )
    selectors: SelectorConfig = Field(default_factory=SelectorConfig)


class DetectionConfig(BaseModel):
    """Timing for reply completion detection."""

    timeout: float = Field(default=180.0, gt=0, description="Hard limit for one wait (seconds)")
    poll_interval: float = Field(
        default=5.0, gt=0, description="Seconds between full signal evaluations"
    )
    progress_interval: float = Field(
        default=1.0, gt=0, description="Seconds between fast context/stall checks"
    )
    stable_window: float = Field(
        default=15.0, gt=0, description="Unchanged content for this long means complete"
    )
    stable_window_per_kchar: float = Field(
        default=0.0, ge=0, description="Extra stable seconds per 1000 characters of content"
    )
    stable_window_max: float = Field(default=60.0, gt=0, description="Cap on the stable window")
    imminent_stable_window: float = Field(
        default=5.0,
        gt=0,
        description="Stable window once a partial-completion affordance is seen",
    )
    stall_seconds: float = Field(
        default=60.0, gt=0, description="No growth for this long after half the timeout resolves"
    )
    progress_probe_after: float = Field(
        default=30.0, ge=0, description="Fast content probes start after this many seconds"
    )
    progress_probe_idle: float = Field(
        default=15.0, ge=0, description="Fast content probes only run after this much idle time"
    )

    @model_validator(mode="after")
    def _check_intervals(self) -> DetectionConfig:
        if self.poll_interval > self.timeout:
            raise ValueError("poll_interval must not exceed timeout")
        if self.progress_interval > self.poll_interval:
            raise ValueError("progress_interval must not exceed poll_interval")
        if self.stable_window_max < self.stable_window:
            raise ValueError("stable_window_max must be >= stable_window")
        return self

    def scaled(self, multiplier: float) -> DetectionConfig:
        """Return a copy with the timeout and stable windows multiplied."""
        return self.model_copy(
            update={
                "timeout": self.timeout * multiplier,
                "stable_window": self.stable_window * multiplier,
                "stable_window_max": self.stable_window_max * multiplier,
            }
        )


class UploadDetectionConfig(DetectionConfig):
    """Timing for attachment upload detection."""

    timeout: float = Field(default=45.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    progress_interval: float = Field(default=1.0, gt=0)
    stable_window: float = Field(default=3.0, gt=0)
    stable_window_max: float = Field(default=8.0, gt=0)
    imminent_stable_window: float = Field(default=3.0, gt=0)
    stall_seconds: float = Field(default=30.0, gt=0)
    progress_probe_after: float = Field(default=0.0, ge=0)
    progress_probe_idle: float = Field(default=0.0, ge=0)
    settle_seconds: float = Field(
        default=3.0, ge=0, description="Pause after upload detection before sending"
    )
    max_multiplier: float = Field(
        default=2.0, ge=1, description="Upper bound for scaling by attachment count"
    )


class RetryConfig(BaseModel):
    """Per-unit retry behaviour."""

    max_attempts: int = Field(
        default=4, ge=1, description="Total attempts per unit, including the first"
    )
    initial_delay: float = Field(
        default=5.0, ge=0, description="Backoff before the second attempt (seconds)"
    )
    max_delay: float = Field(default=120.0, ge=0, description="Backoff ceiling (seconds)")

    @model_validator(mode="after")
    def _check_delays(self) -> RetryConfig:
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self


class BatchConfig(BaseModel):
    """Batch pacing and policy."""

    inter_unit_delay: float = Field(
        default=5.0, ge=0, description="Pause after each processed unit (seconds)"
    )
    retry_failures: bool = Field(
        default=True, description="Re-process units whose result is the error sentinel"
    )
    order: Literal["forward", "reverse"] = Field(default="forward")
    error_sentinel: str = Field(default="ERROR", min_length=1)
    sentinel_match: Literal["record", "prefix", "contains"] = Field(
        default="record", description="How a stored result is recognised as an error"
    )


class QueueColumns(BaseModel):
    """Column mapping for the CSV work queue."""

    label: str = Field(default="name", description="Identifying column used in logs")
    attachments: str = Field(default="file_paths")
    input: str = Field(default="prompt")
    result: str = Field(default="response")
    delimiter: str = Field(default="|", min_length=1, description="Separator in attachments")


class GuardConfig(BaseModel):
    """Rules for detecting that the conversation context was lost."""

    reset_patterns: list[str] = Field(
        default_factory=lambda: [r"/new/?$", r"/c/new/?$"],
        description="Location regexes that mean a fresh, empty conversation",
    )
    conversation_pattern: str = Field(
        default=r"/c/([0-9A-Za-z-]+)",
        description="Regex whose first group extracts the conversation id",
    )


class LogConfig(BaseModel):
    """Structured logging settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console", "both"] = "console"
    file_path: Path | None = None
    max_file_size_mb: int = Field(default=50, gt=0)
    backup_count: int = Field(default=5, ge=0)
    include_timestamps: bool = True


class AppConfig(BaseModel):
    """Complete configuration for a batch run."""

    surface: SurfaceConfig = Field(default_factory=SurfaceConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    upload: UploadDetectionConfig = Field(default_factory=UploadDetectionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    columns: QueueColumns = Field(default_factory=QueueColumns)
    guard: GuardConfig = Field(default_factory=GuardConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> AppConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigError: If the file is unreadable, not YAML, or invalid.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        return cls._validate(data or {}, str(path))

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> AppConfig:
        """Load configuration from a YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}") from e
        return cls._validate(data or {}, "<string>")

    @classmethod
    def _validate(cls, data: object, source: str) -> AppConfig:
        if not isinstance(data, dict):
            raise ConfigError(f"Config {source} must be a mapping, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {source}: {e}") from e
