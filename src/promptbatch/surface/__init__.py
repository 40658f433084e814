"""Interaction surfaces: the chat page the batch is driven through."""

from promptbatch.surface.base import InteractionSurface
from promptbatch.surface.files import (
    describe_file,
    existing_files,
    missing_files,
    normalize_path,
    resolve_attachments,
    resolve_reference,
    unique_files,
)

__all__ = [
    "InteractionSurface",
    "describe_file",
    "existing_files",
    "missing_files",
    "normalize_path",
    "resolve_attachments",
    "resolve_reference",
    "unique_files",
]
