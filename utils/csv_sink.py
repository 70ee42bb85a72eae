"""
CSV Sink - Append-Only, Resume-Safe Record Writer

Writes extracted records to a CSV file in a fixed column order. The header
row is written only when the file is new (or empty); a resumed run appends
after the existing rows.

Usage:
    sink = CsvSink("/data/reports.csv", job.csv_headers)
    sink.open()
    sink.write_record({"name": "Alice", "age": "30"})
    sink.flush()
    sink.close()
"""

import csv
import logging
import os
import threading
from pathlib import Path
from typing import Mapping, Optional, Sequence, TextIO

from utils.errors import SinkError

logger = logging.getLogger(__name__)


class CsvSink:
    """CSV writer safe to share between concurrent page tasks.

    Each write_record() call emits one whole row under a lock, so rows from
    different pages never interleave.
    """

    def __init__(self, path: str | Path, columns: Sequence[str]) -> None:
        self.path = Path(path)
        self.columns = list(columns)
        self._lock = threading.Lock()
        self._file: Optional[TextIO] = None
        self._writer: Optional[csv.DictWriter] = None
        self.rows_written = 0

    def open(self) -> None:
        """
        Open the target for appending, writing the header if the file is new.

        Raises:
            SinkError: If the file can't be created or opened
        """
        with self._lock:
            if self._file is not None:
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                needs_header = not self.path.exists() or self.path.stat().st_size == 0
                self._file = open(self.path, "a", encoding="utf-8", newline="")
                self._writer = csv.DictWriter(
                    self._file,
                    fieldnames=self.columns,
                    restval="",
                    extrasaction="ignore",
                )
                if needs_header:
                    self._writer.writeheader()
                    self._file.flush()
            except OSError as e:
                raise SinkError(f"Failed to open output file {self.path}: {e}") from e

        logger.info(
            "CSV sink opened",
            extra={"file_path": str(self.path), "header_written": needs_header},
        )

    def write_record(self, record: Mapping[str, str]) -> None:
        """
        Append one record as a row in schema order.

        Missing columns serialize as empty strings; keys outside the schema
        are ignored.

        Raises:
            SinkError: If the sink isn't open or the write fails
        """
        with self._lock:
            if self._writer is None:
                raise SinkError(f"Output file {self.path} is not open")
            try:
                self._writer.writerow(record)
            except (OSError, csv.Error) as e:
                raise SinkError(f"Failed to write row to {self.path}: {e}") from e
            self.rows_written += 1

    def flush(self) -> None:
        """Force accepted rows to disk."""
        with self._lock:
            if self._file is None:
                return
            try:
                self._file.flush()
                os.fsync(self._file.fileno())
            except OSError as e:
                raise SinkError(f"Failed to flush {self.path}: {e}") from e

    def close(self) -> None:
        """Flush and release the file. Safe to call more than once."""
        with self._lock:
            if self._file is None:
                return
            try:
                self._file.flush()
                os.fsync(self._file.fileno())
            except OSError as e:
                raise SinkError(f"Failed to flush {self.path}: {e}") from e
            finally:
                self._file.close()
                self._file = None
                self._writer = None

        logger.info(
            "CSV sink closed",
            extra={"file_path": str(self.path), "rows_written": self.rows_written},
        )
