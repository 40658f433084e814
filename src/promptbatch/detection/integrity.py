"""Session integrity guard.

Detects that the chat surface silently left the conversation an exchange
started in, for example a reset to a blank new chat during the send step.
Without this check the detector would either wait out its full timeout or
attribute a stale reply to the current unit.

The guard compares a cheap identifying property, the page location, against
a baseline token captured before the operation.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from promptbatch.core.logging import get_logger

_logger = get_logger("guard")

LocationProbe = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class ContextToken:
    """Identity of the conversation context at baseline time."""

    location: str
    conversation: str | None = None


class SessionIntegrityGuard:
    """Compares the surface's current location against a captured baseline.

    A location has diverged from its baseline when any of these hold:

    - it matches one of the reset patterns (a fresh, empty conversation);
    - the baseline named a conversation and the current location names a
      different one, or none;
    - the baseline named no conversation, and the current location is
      neither the baseline location nor a conversation of its own.

    The last rule lets a brand-new chat acquire its conversation id after
    the first message without counting as a divergence.
    """

    def __init__(
        self,
        location_probe: LocationProbe,
        *,
        reset_patterns: Sequence[str] = (r"/new/?$", r"/c/new/?$"),
        conversation_pattern: str = r"/c/([0-9A-Za-z-]+)",
    ) -> None:
        self._probe = location_probe
        self._reset = [re.compile(p) for p in reset_patterns]
        self._conversation = re.compile(conversation_pattern)
        self._last_good: str | None = None

    @property
    def last_good_location(self) -> str | None:
        """Most recent location captured as a baseline that named a conversation."""
        return self._last_good

    def conversation_id(self, location: str) -> str | None:
        match = self._conversation.search(location)
        if match is None:
            return None
        conversation = match.group(1)
        # "/c/new" is a reset location, not a conversation
        if any(p.search(location) for p in self._reset):
            return None
        return conversation

    def is_reset_location(self, location: str) -> bool:
        return any(p.search(location) for p in self._reset)

    async def capture_baseline(self) -> ContextToken:
        """Capture the current context as a baseline token."""
        location = await self._probe()
        token = ContextToken(location=location, conversation=self.conversation_id(location))
        if token.conversation is not None:
            self._last_good = location
        _logger.debug(
            "guard.baseline_captured",
            location=location,
            conversation=token.conversation,
        )
        return token

    async def remember_location(self) -> None:
        """Record the current location as last good if it names a conversation.

        Probe failures are ignored; the previous last good location stays.
        """
        try:
            location = await self._probe()
        except Exception as e:
            _logger.debug("guard.probe_failed", error=str(e))
            return
        if self.conversation_id(location) is not None:
            self._last_good = location

    def diverged_from(self, token: ContextToken, location: str) -> bool:
        """Pure divergence rule, applied to an already-probed location."""
        if self.is_reset_location(location):
            # Starting on a reset page and staying there is not a divergence
            return location != token.location
        current = self.conversation_id(location)
        if token.conversation is not None:
            return current != token.conversation
        return location != token.location and current is None

    async def has_diverged(self, token: ContextToken) -> bool:
        """Return True if the surface has left the baseline context.

        A failing location probe is reported as "not diverged": the detector
        treats probe failures as undetermined, not as evidence.
        """
        try:
            location = await self._probe()
        except Exception as e:
            _logger.debug("guard.probe_failed", error=str(e))
            return False
        diverged = self.diverged_from(token, location)
        if diverged:
            _logger.warning(
                "guard.diverged",
                baseline=token.location,
                current=location,
                baseline_conversation=token.conversation,
            )
        return diverged
