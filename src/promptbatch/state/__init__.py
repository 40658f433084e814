"""Work queue persistence."""

from promptbatch.state.base import WorkQueueStore
from promptbatch.state.csv_backend import CsvWorkQueue
from promptbatch.state.memory import InMemoryWorkQueue

__all__ = ["CsvWorkQueue", "InMemoryWorkQueue", "WorkQueueStore"]
