"""Utility helpers."""

from promptbatch.utils.time import utc_now

__all__ = ["utc_now"]
