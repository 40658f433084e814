"""Abstract base for work queue stores."""

from abc import ABC, abstractmethod

from promptbatch.core.checkpoint import WorkUnit


class WorkQueueStore(ABC):
    """Abstract persistent work queue.

    Implementations hold the full table of units. The batch processor loads
    it once at the start of a run and saves the full table after every
    processed unit, so the store is also the run's checkpoint.
    """

    @abstractmethod
    async def load(self) -> list[WorkUnit]:
        """Load every unit, in queue order.

        Raises:
            QueueFileError: If the queue is missing or malformed.
        """
        ...

    @abstractmethod
    async def save(self, units: list[WorkUnit]) -> None:
        """Persist the full table of units, replacing the previous contents."""
        ...

    @abstractmethod
    def exists(self) -> bool:
        """Whether the underlying queue exists."""
        ...

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable location of the queue (a path, or "memory")."""
        ...
