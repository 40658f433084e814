"""In-memory work queue for testing.

Keeps a deep copy of every saved table so tests can inspect exactly what
was checkpointed after each unit.
"""

from promptbatch.core.checkpoint import WorkUnit
from promptbatch.state.base import WorkQueueStore


class InMemoryWorkQueue(WorkQueueStore):
    """Work queue held in memory, with a snapshot per save."""

    def __init__(self, units: list[WorkUnit] | None = None) -> None:
        self.units: list[WorkUnit] = [u.model_copy(deep=True) for u in units or []]
        self.snapshots: list[list[WorkUnit]] = []

    async def load(self) -> list[WorkUnit]:
        return [u.model_copy(deep=True) for u in self.units]

    async def save(self, units: list[WorkUnit]) -> None:
        snapshot = [u.model_copy(deep=True) for u in units]
        self.snapshots.append(snapshot)
        self.units = [u.model_copy(deep=True) for u in snapshot]

    def exists(self) -> bool:
        return True

    @property
    def location(self) -> str:
        return "memory"

    @property
    def save_count(self) -> int:
        return len(self.snapshots)
