"""CSV file work queue.

The queue file is both input and checkpoint: results are written back into
its result column after every processed unit. Writes go through a temporary
file renamed over the original, so a crash mid-write leaves the previous
table intact. A one-time ``.bak`` copy of the untouched file is made before
the first write.

Columns other than the mapped ones are carried through unchanged, in their
original order.
"""

from __future__ import annotations

import csv
import os
import shutil
from pathlib import Path

from promptbatch.core.checkpoint import WorkUnit, parse_attachments
from promptbatch.core.config import QueueColumns
from promptbatch.core.errors import QueueFileError
from promptbatch.core.logging import get_logger
from promptbatch.state.base import WorkQueueStore

_logger = get_logger("state.csv")


class CsvWorkQueue(WorkQueueStore):
    """Work queue stored in a CSV file with a header row.

    Example usage:
        queue = CsvWorkQueue(Path("prompts.csv"), config.columns)
        units = await queue.load()
        ...
        await queue.save(units)
    """

    def __init__(
        self,
        path: Path,
        columns: QueueColumns | None = None,
        encoding: str = "utf-8",
    ) -> None:
        """Initialize the CSV queue.

        Args:
            path: Path to the CSV file.
            columns: Column mapping; defaults to name/file_paths/prompt/response.
            encoding: File encoding used for reading and writing.
        """
        self.path = Path(path)
        self.columns = columns or QueueColumns()
        self.encoding = encoding
        self._fieldnames: list[str] = []
        self._backed_up = False

    @property
    def location(self) -> str:
        return str(self.path)

    @property
    def backup_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + ".bak")

    @property
    def fieldnames(self) -> list[str]:
        """Header of the file as loaded, plus the result column if it was missing."""
        return list(self._fieldnames)

    def exists(self) -> bool:
        return self.path.is_file()

    def _mapped(self) -> set[str]:
        cols = self.columns
        return {cols.label, cols.attachments, cols.input, cols.result}

    async def load(self) -> list[WorkUnit]:
        if not self.exists():
            raise QueueFileError(f"Queue file not found: {self.path}")

        try:
            # utf-8-sig tolerates the BOM spreadsheet exports often add
            encoding = "utf-8-sig" if self.encoding.lower() == "utf-8" else self.encoding
            with open(self.path, newline="", encoding=encoding) as f:
                reader = csv.DictReader(f)
                header = list(reader.fieldnames or [])
                rows = list(reader)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise QueueFileError(f"Cannot read queue file {self.path}: {e}") from e

        if not header:
            raise QueueFileError(f"Queue file has no header row: {self.path}")
        if self.columns.input not in header:
            raise QueueFileError(
                f"Queue file {self.path} has no '{self.columns.input}' column "
                f"(found: {', '.join(header)})"
            )

        if self.columns.result not in header:
            header.append(self.columns.result)
        self._fieldnames = header

        mapped = self._mapped()
        units: list[WorkUnit] = []
        for row in rows:
            values = {k: (v or "") for k, v in row.items() if k is not None}
            if not any(v.strip() for v in values.values()):
                continue
            result = values.get(self.columns.result, "")
            units.append(
                WorkUnit(
                    id=len(units) + 1,
                    label=values.get(self.columns.label, "").strip(),
                    input=values.get(self.columns.input, ""),
                    attachments=parse_attachments(
                        values.get(self.columns.attachments), self.columns.delimiter
                    ),
                    result=result if result.strip() else None,
                    extra={k: v for k, v in values.items() if k not in mapped},
                )
            )

        _logger.info("queue.loaded", path=str(self.path), units=len(units))
        return units

    def _row(self, unit: WorkUnit) -> dict[str, str]:
        cols = self.columns
        row = dict(unit.extra)
        row[cols.label] = unit.label
        row[cols.input] = unit.input
        row[cols.attachments] = cols.delimiter.join(unit.attachments)
        row[cols.result] = unit.result or ""
        return row

    def _fields_for(self, units: list[WorkUnit]) -> list[str]:
        if self._fieldnames:
            fields = list(self._fieldnames)
        else:
            cols = self.columns
            fields = [cols.label, cols.input, cols.attachments, cols.result]
        for unit in units:
            for key in unit.extra:
                if key not in fields:
                    fields.append(key)
        return fields

    def _backup_once(self) -> None:
        if self._backed_up:
            return
        if self.exists() and not self.backup_path.exists():
            shutil.copy2(self.path, self.backup_path)
            _logger.info("queue.backup_created", backup=str(self.backup_path))
        # Set only once the copy succeeded, so a failed backup is retried
        self._backed_up = True

    async def save(self, units: list[WorkUnit]) -> None:
        """Write the full table atomically.

        The original file is left untouched if any step fails.

        Raises:
            OSError: If the backup or the temporary file cannot be written,
                or the rename fails.
        """
        self._backup_once()
        fields = self._fields_for(units)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        try:
            with open(temp_path, "w", newline="", encoding=self.encoding) as f:
                writer = csv.DictWriter(
                    f, fieldnames=fields, quoting=csv.QUOTE_ALL, extrasaction="ignore"
                )
                writer.writeheader()
                for unit in units:
                    writer.writerow(self._row(unit))
            os.replace(temp_path, self.path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        _logger.debug("queue.saved", path=str(self.path), units=len(units))
