"""Execution: one exchange, retries around it, and the batch loop."""

from promptbatch.execution.batch import (
    BatchProcessor,
    ProcessingOrder,
    RunSummary,
    SkipReason,
    UnitCallback,
    order_indices,
)
from promptbatch.execution.exchange import Exchange, response_signals
from promptbatch.execution.retry import (
    AttemptRun,
    RetryContext,
    RetryOrchestrator,
    UnitOutcome,
    backoff_delay,
)

__all__ = [
    "AttemptRun",
    "BatchProcessor",
    "Exchange",
    "ProcessingOrder",
    "RetryContext",
    "RetryOrchestrator",
    "RunSummary",
    "SkipReason",
    "UnitCallback",
    "UnitOutcome",
    "backoff_delay",
    "order_indices",
    "response_signals",
]
