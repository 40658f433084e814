"""Abstract interaction surface.

The detector, guard and orchestrator depend only on this narrow contract.
The production implementation drives a browser page; tests use a scripted
fake. Every method is a suspension point.
"""

from abc import ABC, abstractmethod
from pathlib import Path


class InteractionSurface(ABC):
    """Abstract chat surface.

    Actions raise SurfaceError (or a subclass) when they cannot be carried
    out. Probes answer a single question about the current page and may raise
    on driver errors; callers decide how to treat a failed probe.
    """

    # Lifecycle

    @abstractmethod
    async def open(self) -> None:
        """Start the surface and load the chat page."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release every resource held by the surface."""
        ...

    @abstractmethod
    async def ensure_ready(self, timeout: float | None = None) -> None:
        """Wait until the chat entry point is present.

        Raises:
            SurfaceTimeout: If the entry point does not appear in time.
        """
        ...

    # Actions

    @abstractmethod
    async def submit_input(self, text: str) -> None:
        """Enter message text into the input."""
        ...

    @abstractmethod
    async def verify_input(self, text: str) -> None:
        """Confirm the entered text is still present, re-entering it once if not."""
        ...

    @abstractmethod
    async def attach_resources(self, paths: list[Path]) -> None:
        """Start uploading files into the current message."""
        ...

    @abstractmethod
    async def trigger_operation(self) -> None:
        """Send the message and confirm the surface went busy."""
        ...

    @abstractmethod
    async def recover(self, target_location: str | None = None) -> None:
        """Bring the surface back to a usable conversation.

        Navigates to `target_location` when given, otherwise reloads, then
        waits for the entry point.
        """
        ...

    # Probes

    @abstractmethod
    async def probe_content(self) -> str:
        """Text of the reply to the most recent trigger ("" if none yet)."""
        ...

    @abstractmethod
    async def probe_action_control_idle(self) -> bool:
        """True when the control that triggered the operation is idle again."""
        ...

    @abstractmethod
    async def probe_secondary_marker(self) -> bool:
        """True when an affordance only rendered after completion is visible."""
        ...

    @abstractmethod
    async def probe_partial_affordance(self) -> bool:
        """True when a "continue"-style affordance is visible."""
        ...

    @abstractmethod
    async def probe_upload_busy(self) -> bool:
        """True while any upload progress indicator is visible."""
        ...

    @abstractmethod
    async def probe_upload_ready(self) -> bool:
        """True when at least one attachment indicator is visible."""
        ...

    @abstractmethod
    async def probe_attachment_summary(self) -> str:
        """Short description of the visible attachments ("" if none)."""
        ...

    @abstractmethod
    async def probe_location(self) -> str:
        """Identifying location of the current page (its URL)."""
        ...

    # Diagnostics

    async def screenshot(self, name: str) -> Path | None:
        """Capture the page for diagnostics. Surfaces without a display return None."""
        return None

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable surface name."""
        ...
