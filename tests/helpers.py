"""Shared test helpers: a controllable clock and a scripted chat surface."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path

from promptbatch.surface.base import InteractionSurface


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def timeline(clock: FakeClock, *points: tuple[float, str]) -> Callable[[], Awaitable[str]]:
    """Content probe returning the latest text whose offset has passed.

    Offsets are seconds after the probe was created.
    """
    start = clock.now

    async def probe() -> str:
        elapsed = clock.now - start
        text = ""
        for at, value in points:
            if elapsed >= at:
                text = value
        return text

    return probe


def flag_after(clock: FakeClock, seconds: float | None) -> Callable[[], Awaitable[bool]]:
    """Signal check that turns True `seconds` after creation (never if None)."""
    start = clock.now

    async def check() -> bool:
        return seconds is not None and clock.now - start >= seconds

    return check


class FakeSurface(InteractionSurface):
    """Scripted chat surface driven by a FakeClock.

    After each send, the reply appears `reply_delay` seconds later and the
    send control goes idle `idle_delay` seconds later. `trigger_errors` are
    raised by successive sends before any send succeeds, and each successful
    send moves the page to the next of `trigger_locations`, if any.
    """

    def __init__(
        self,
        clock: FakeClock,
        *,
        location: str = "https://chat.example/c/conv-1",
    ) -> None:
        self.clock = clock
        self.location = location
        self.replies: dict[str, str] = {}
        self.default_reply = "The answer."
        self.reply_delay = 10.0
        self.idle_delay: float | None = 12.0
        self.trigger_errors: list[Exception] = []
        self.trigger_locations: list[str] = []
        self.upload_delay = 2.0
        self.upload_accepted = True

        self.opened = False
        self.closed = False
        self.submitted: list[str] = []
        self.attached: list[list[Path]] = []
        self.triggers = 0
        self.recoveries: list[str | None] = []
        self.screenshots: list[str] = []
        self._triggered_at: float | None = None
        self._attached_at: float | None = None

    @property
    def name(self) -> str:
        return "fake"

    def _since(self, mark: float | None) -> float | None:
        return None if mark is None else self.clock.now - mark

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def ensure_ready(self, timeout: float | None = None) -> None:
        return None

    async def submit_input(self, text: str) -> None:
        self.submitted.append(text)
        self._triggered_at = None

    async def verify_input(self, text: str) -> None:
        return None

    async def attach_resources(self, paths: list[Path]) -> None:
        self.attached.append(list(paths))
        self._attached_at = self.clock.now

    async def trigger_operation(self) -> None:
        self.triggers += 1
        if self.trigger_errors:
            raise self.trigger_errors.pop(0)
        self._triggered_at = self.clock.now
        if self.trigger_locations:
            self.location = self.trigger_locations.pop(0)

    async def recover(self, target_location: str | None = None) -> None:
        self.recoveries.append(target_location)
        if target_location:
            self.location = target_location
        self._triggered_at = None

    async def probe_content(self) -> str:
        since = self._since(self._triggered_at)
        if since is None or since < self.reply_delay:
            return ""
        last = self.submitted[-1] if self.submitted else ""
        return self.replies.get(last, self.default_reply)

    async def probe_action_control_idle(self) -> bool:
        since = self._since(self._triggered_at)
        return since is not None and self.idle_delay is not None and since >= self.idle_delay

    async def probe_secondary_marker(self) -> bool:
        return False

    async def probe_partial_affordance(self) -> bool:
        return False

    async def probe_upload_busy(self) -> bool:
        since = self._since(self._attached_at)
        return since is not None and since < self.upload_delay

    async def probe_upload_ready(self) -> bool:
        since = self._since(self._attached_at)
        return self.upload_accepted and since is not None and since >= self.upload_delay

    async def probe_attachment_summary(self) -> str:
        if not self.attached or not self.upload_accepted:
            return ""
        return f"files={len(self.attached[-1])}"

    async def probe_location(self) -> str:
        return self.location

    async def screenshot(self, name: str) -> Path | None:
        self.screenshots.append(name)
        return None
