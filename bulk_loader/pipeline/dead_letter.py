"""
Dead-letter sink for records the retry policy gave up on.

Rejected records are kept in memory and, when a path is given, appended to a
CSV file with the original header plus `_line` and `_error` columns so they
can be fixed and re-fed to the loader.
"""

from __future__ import annotations

import csv
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, TextIO

from bulk_loader.domain.models import Header, Record
from bulk_loader.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class DeadLetter:
    record: Record
    error: str
    attempts: int


class DeadLetterSink:
    """
    Thread-safe collector of rejected records.

    Call `open(header)` before the first `put()` when writing to a file, and
    `close()` once the workers have finished.
    """

    def __init__(self, path: Optional[Path | str] = None) -> None:
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._entries: List[DeadLetter] = []
        self._fh: Optional[TextIO] = None
        self._writer = None

    @property
    def entries(self) -> List[DeadLetter]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def open(self, header: Header) -> None:
        if self.path is None or self._fh is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._fh)
        self._writer.writerow([*header.columns, "_line", "_error"])
        self._fh.flush()

    def put(self, record: Record, error: BaseException | str, attempts: int) -> None:
        entry = DeadLetter(record=record, error=str(error), attempts=attempts)
        with self._lock:
            self._entries.append(entry)
            if self._writer is not None:
                self._writer.writerow([*record.values, record.line_number, entry.error])
                self._fh.flush()
        log.warning(
            f"[DEAD LETTER] line {record.line_number} rejected after {attempts} attempt(s)",
            extra={"line": record.line_number, "attempts": attempts, "error": entry.error},
        )

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None
                self._writer = None
                log.info("Dead-letter file written", extra={"path": str(self.path)})


__all__ = ["DeadLetter", "DeadLetterSink"]
