"""Time utilities.

Timestamps on diagnostic records and screenshot names are timezone-aware UTC.
Elapsed-time arithmetic elsewhere uses an injectable monotonic clock instead.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)
