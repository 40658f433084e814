"""Work unit model and result-state derivation.

A WorkUnit is one row of the work queue. Its status is never stored: it is
derived from the result field each time, so the queue file alone is the
checkpoint and a run can resume from it after any interruption.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class UnitStatus(str, Enum):
    """Status of a unit, derived from its result."""

    PENDING = "pending"  # no result yet
    DONE = "done"  # a non-error result
    FAILED = "failed"  # result is the error sentinel


@dataclass(frozen=True)
class ErrorSentinel:
    """Reserved result text marking a unit whose attempts were exhausted.

    Attributes:
        marker: The reserved text, "ERROR" by default.
        match: "record" recognises results that start with the record head
            written by `format`, e.g. "ERROR (after "; "prefix" recognises
            any result starting with the marker; "contains" recognises the
            marker anywhere in the result.
    """

    marker: str = "ERROR"
    match: Literal["record", "prefix", "contains"] = "record"

    def matches(self, result: str | None) -> bool:
        """Return True if a stored result is an error record."""
        if not result:
            return False
        if self.match == "contains":
            return self.marker in result
        head = f"{self.marker} (after " if self.match == "record" else self.marker
        return result.lstrip().startswith(head)

    def format(self, attempts: int, error: str) -> str:
        """Build the result text written for a failed unit."""
        noun = "attempt" if attempts == 1 else "attempts"
        return f"{self.marker} (after {attempts} {noun}): {error}"


DEFAULT_SENTINEL = ErrorSentinel()


class WorkUnit(BaseModel):
    """One unit of work: a single exchange with the chat surface."""

    id: int = Field(ge=1, description="1-based position in the queue")
    label: str = Field(default="", description="Identifying text for logs (e.g. a name)")
    input: str = Field(default="", description="Message text to send")
    attachments: list[str] = Field(
        default_factory=list, description="Ordered file references to upload"
    )
    result: str | None = Field(default=None, description="Reply text or the error sentinel")
    extra: dict[str, str] = Field(
        default_factory=dict,
        description="Every other column of the source row, preserved for write-back",
    )

    def has_result(self) -> bool:
        return bool(self.result and self.result.strip())

    def status(self, sentinel: ErrorSentinel = DEFAULT_SENTINEL) -> UnitStatus:
        """Derive the unit's status from its result."""
        if not self.has_result():
            return UnitStatus.PENDING
        if sentinel.matches(self.result):
            return UnitStatus.FAILED
        return UnitStatus.DONE

    @property
    def display_name(self) -> str:
        return self.label or f"unit {self.id}"


def parse_attachments(cell: str | None, delimiter: str = "|") -> list[str]:
    """Split an attachment cell into trimmed, non-empty references."""
    if not cell:
        return []
    return [part.strip() for part in cell.split(delimiter) if part.strip()]


def count_by_status(
    units: list[WorkUnit], sentinel: ErrorSentinel = DEFAULT_SENTINEL
) -> dict[UnitStatus, int]:
    """Count units per derived status (every status is present in the result)."""
    counts = {status: 0 for status in UnitStatus}
    for unit in units:
        counts[unit.status(sentinel)] += 1
    return counts
