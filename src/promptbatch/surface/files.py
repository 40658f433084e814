"""Attachment path handling.

Queue cells hold file references as typed by people: sometimes URL-encoded,
sometimes with shell-style backslash escapes, sometimes repeated. These
helpers turn a cell's references into a clean, ordered list of files that
actually exist.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from urllib.parse import unquote

from promptbatch.core.logging import get_logger

_logger = get_logger("files")


def normalize_path(ref: str) -> str:
    """Trim, percent-decode and drop backslash escapes from a reference."""
    return unquote(ref.strip()).replace("\\", "")


def resolve_reference(ref: str, base_dir: Path | None = None) -> Path | None:
    """Path a reference points to, or None for an empty reference.

    Relative references are resolved against `base_dir` when given (the
    queue file's directory), otherwise against the working directory.
    """
    normalized = normalize_path(ref)
    if not normalized:
        return None
    path = Path(normalized).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def existing_files(refs: Iterable[str], base_dir: Path | None = None) -> list[Path]:
    """Normalize references and keep those that name existing files."""
    found: list[Path] = []
    for ref in refs:
        path = resolve_reference(ref, base_dir)
        if path is None:
            continue
        if path.is_file():
            found.append(path)
        else:
            _logger.warning("files.not_found", path=str(path))
    return found


def missing_files(refs: Iterable[str], base_dir: Path | None = None) -> list[str]:
    """References that do not name an existing file, as written."""
    missing = []
    for ref in refs:
        path = resolve_reference(ref, base_dir)
        if path is not None and not path.is_file():
            missing.append(ref)
    return missing


def unique_files(paths: Iterable[Path]) -> list[Path]:
    """Drop duplicates by resolved absolute path, keeping first occurrences."""
    seen: set[Path] = set()
    unique: list[Path] = []
    for path in paths:
        resolved = path.resolve()
        if resolved in seen:
            _logger.debug("files.duplicate_skipped", path=str(path))
            continue
        seen.add(resolved)
        unique.append(resolved)
    return unique


def describe_file(path: Path) -> dict[str, object]:
    """Name and size of a file, for logging."""
    try:
        size = path.stat().st_size
    except OSError:
        size = -1
    return {"name": path.name, "size": size}


def resolve_attachments(refs: Iterable[str], base_dir: Path | None = None) -> list[Path]:
    """Existing, de-duplicated files for a unit's attachment references."""
    return unique_files(existing_files(refs, base_dir))
