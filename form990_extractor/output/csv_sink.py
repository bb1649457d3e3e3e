"""
Serialized CSV sink for flattened rows.

The sink is the single synchronization point of the pipeline: any number of
threads may call append(), and a lock guarantees that each row reaches the file
whole, with no bytes of another row interleaved. Every append is flushed so a
crash loses at most the row in flight.
"""

import csv
import logging
import os
import threading

from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..interfaces import RowSinkInterface
from ..exceptions import SinkError


class CsvSink(RowSinkInterface):
    """
    Thread-safe, flush-per-row CSV writer.

    Lifecycle:
    1. open() truncates (or creates) the file and writes the header row
    2. append() is called from any thread, once per materialized document
    3. close() flushes and closes the file

    Any write or flush failure marks the sink as failed and raises SinkError;
    later appends raise immediately because the file can no longer be trusted.
    """

    def __init__(self, output_path: Union[str, Path], header: Sequence[str],
                 fsync_each_row: bool = False, encoding: str = "utf-8"):
        """
        Initialize the sink.

        Args:
            output_path: CSV file to create (truncated if it exists)
            header: Column names written as the first row
            fsync_each_row: Call os.fsync after every flush
            encoding: Output text encoding
        """
        self.output_path = Path(output_path)
        self.header = list(header)
        self.fsync_each_row = fsync_each_row
        self.encoding = encoding
        self.logger = logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._file = None
        self._writer = None
        self._failed: Optional[SinkError] = None
        self.rows_written = 0

    @property
    def width(self) -> int:
        return len(self.header)

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> None:
        """
        Create the output fresh and write the header row.

        Raises:
            SinkError: If the file cannot be created or the header cannot be written
        """
        with self._lock:
            if self._file is not None:
                raise SinkError("Sink is already open", str(self.output_path))
            try:
                self.output_path.parent.mkdir(parents=True, exist_ok=True)
                self._file = open(self.output_path, 'w', newline='', encoding=self.encoding)
                self._writer = csv.writer(self._file, quoting=csv.QUOTE_MINIMAL)
                self._write_and_flush(self.header)
            except (OSError, csv.Error) as e:
                self._fail(f"Failed to create output table: {e}")
            self.rows_written = 0
        self.logger.info(f"Output table created: {self.output_path} ({self.width} columns)")

    def append(self, row: Sequence[str]) -> None:
        """
        Append one row and flush it.

        Args:
            row: Cells in header order

        Raises:
            SinkError: If the sink is not open, previously failed, the row width is
                wrong, or the write/flush fails
        """
        with self._lock:
            if self._failed is not None:
                raise SinkError(f"Sink previously failed: {self._failed}", str(self.output_path))
            if self._file is None:
                raise SinkError("Sink is not open", str(self.output_path))
            if len(row) != self.width:
                self._fail(f"Row has {len(row)} cells, header has {self.width}")
            try:
                self._write_and_flush(row)
            except (OSError, csv.Error, ValueError) as e:
                self._fail(f"Failed to write row: {e}")
            self.rows_written += 1

    def _write_and_flush(self, row: Sequence[str]) -> None:
        self._writer.writerow(row)
        self._file.flush()
        if self.fsync_each_row:
            os.fsync(self._file.fileno())

    def _fail(self, message: str) -> None:
        error = SinkError(message, str(self.output_path))
        self._failed = error
        self.logger.error(f"Output sink failure ({self.output_path}): {message}")
        raise error

    def close(self) -> None:
        """
        Flush and close the output. Safe to call more than once.

        Raises:
            SinkError: If the final flush fails on a healthy sink
        """
        with self._lock:
            if self._file is None:
                return
            stream = self._file
            self._file = None
            self._writer = None
            try:
                stream.close()
            except OSError as e:
                if self._failed is None:
                    self._fail(f"Failed to close output table: {e}")
        self.logger.info(f"Output table closed: {self.output_path} ({self.rows_written} rows)")

    def __enter__(self) -> 'CsvSink':
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def read_rows(output_path: Union[str, Path], encoding: str = "utf-8") -> List[List[str]]:
    """Read a sink's output back as a list of rows (header first)."""
    with open(output_path, 'r', newline='', encoding=encoding) as stream:
        return list(csv.reader(stream))
