"""
Core data models for the Form 990 XML flattening system.

This module defines the primary data structures shared by the flattener, the
row materializer, the schedulers and the pipeline: shards, flat records, the
immutable output header, processing configuration and result containers.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple, Any


PATH_SEPARATOR = "."


class ColumnSource(Enum):
    """Where a header column takes its value from."""
    XML_PATH = "xml_path"
    FILE_NAME = "file_name"


@dataclass(frozen=True)
class Shard:
    """
    One extracted-archive directory and the documents it directly contains.

    Attributes:
        path: Directory holding the sibling documents
        documents: Regular files in directory listing order
    """
    path: Path
    documents: Tuple[Path, ...] = ()

    @property
    def name(self) -> str:
        return self.path.name

    def __len__(self) -> int:
        return len(self.documents)


class FlatRecord:
    """
    Path-keyed values observed in exactly one document.

    Keys are separator-joined ancestor chains (".Return.ReturnHeader.TaxYr"),
    values are the trimmed text runs seen at that path in document order.
    Paths visited without any text are registered with an empty list.
    """

    __slots__ = ("document_path", "_values")

    def __init__(self, document_path: Optional[str] = None):
        self.document_path = document_path
        self._values: Dict[str, List[str]] = {}

    def register(self, path: str) -> None:
        """Make sure a path exists, even if it never receives text."""
        if path not in self._values:
            self._values[path] = []

    def add(self, path: str, value: str) -> None:
        """Append a text value under a path, keeping occurrence order."""
        values = self._values.get(path)
        if values is None:
            self._values[path] = [value]
        else:
            values.append(value)

    def get(self, path: str) -> List[str]:
        return self._values.get(path, [])

    def paths(self) -> List[str]:
        return list(self._values)

    def populated(self) -> Dict[str, List[str]]:
        """Return only the paths that carry at least one value."""
        return {path: list(values) for path, values in self._values.items() if values}

    def as_dict(self) -> Dict[str, List[str]]:
        return {path: list(values) for path, values in self._values.items()}

    @property
    def file_name(self) -> str:
        if not self.document_path:
            return ""
        return Path(self.document_path).name

    def __contains__(self, path: object) -> bool:
        return path in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"FlatRecord(document_path={self.document_path!r}, paths={len(self._values)})"


@dataclass(frozen=True)
class HeaderColumn:
    """
    One output column and the canonical record paths it accepts.

    Attributes:
        name: Column name written in the header row
        paths: Canonical paths bound to this column, in lookup order
        source: XML_PATH for record-backed columns, FILE_NAME for the document name
        description: Optional human-readable description
    """
    name: str
    paths: Tuple[str, ...] = ()
    source: ColumnSource = ColumnSource.XML_PATH
    description: Optional[str] = None

    def __post_init__(self):
        """Validate column configuration."""
        if not self.name or not self.name.strip():
            raise ValueError("column name cannot be empty")
        if self.source is ColumnSource.XML_PATH and not self.paths:
            raise ValueError(f"column '{self.name}' must bind at least one path")


@dataclass(frozen=True)
class HeaderSchema:
    """
    Immutable, ordered output columns.

    Built once before any worker starts and shared read-only afterwards.
    """
    columns: Tuple[HeaderColumn, ...]
    bound_paths: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Validate the column set and index the bound paths."""
        if not self.columns:
            raise ValueError("header must define at least one column")
        names = [column.name for column in self.columns]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate column names: {', '.join(duplicates)}")
        paths = frozenset(path for column in self.columns for path in column.paths)
        object.__setattr__(self, "bound_paths", paths)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[HeaderColumn]:
        return iter(self.columns)


@dataclass
class ProcessingConfig:
    """
    Configuration parameters for a flattening run.

    Attributes:
        max_workers: Maximum number of shards processed concurrently
        progress_interval: Completed documents between progress log lines
        multi_value_separator: Delimiter used when a path holds several values
        read_chunk_size: Bytes fed to the XML parser per read
        row_queue_size: Rows buffered between worker processes and the writer
        fsync_each_row: Force an os.fsync after every flushed row
        archive_extensions: File suffixes excluded from shard discovery
    """
    max_workers: int = 12
    progress_interval: int = 1000
    multi_value_separator: str = "|"
    read_chunk_size: int = 65536
    row_queue_size: int = 10000
    fsync_each_row: bool = False
    archive_extensions: Tuple[str, ...] = (".zip",)

    def __post_init__(self):
        """Validate processing configuration."""
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if self.progress_interval <= 0:
            raise ValueError("progress_interval must be positive")
        if self.read_chunk_size <= 0:
            raise ValueError("read_chunk_size must be positive")
        if self.row_queue_size <= 0:
            raise ValueError("row_queue_size must be positive")
        if self.multi_value_separator is None:
            self.multi_value_separator = ""
        self.archive_extensions = tuple(ext.lower() for ext in self.archive_extensions)


@dataclass
class DocumentFailure:
    """A document that was skipped, and why."""
    document_path: str
    error_stage: str
    error_message: str


@dataclass
class ShardResult:
    """Outcome of one worker processing one shard."""
    shard_path: str
    documents_processed: int = 0
    documents_skipped: int = 0
    unmapped_paths: int = 0
    cancelled: bool = False
    success: bool = True
    error_stage: Optional[str] = None
    error_message: Optional[str] = None
    processing_time: float = 0.0
    failures: List[DocumentFailure] = field(default_factory=list)


@dataclass
class ProcessingResult:
    """
    Results from a flattening run.

    Attributes:
        documents_processed: Documents flattened and written to the sink
        documents_skipped: Documents skipped because they could not be read or parsed
        unmapped_paths: Record paths dropped because no header column binds them
        shards_total: Shards handed to the scheduler
        shards_processed: Shards whose worker ran to completion
        shards_skipped: Shards dropped during discovery
        shards_failed: Shards whose worker failed outright
        shards_cancelled: Shards stopped or never dispatched because of a stop request
        cancelled: Whether a stop request interrupted the run
        processing_time_seconds: Wall-clock time of the scheduling phase
        errors: Human readable error messages for skipped units
        performance_metrics: Dictionary of performance metrics
    """
    documents_processed: int = 0
    documents_skipped: int = 0
    unmapped_paths: int = 0
    shards_total: int = 0
    shards_processed: int = 0
    shards_skipped: int = 0
    shards_failed: int = 0
    shards_cancelled: int = 0
    cancelled: bool = False
    processing_time_seconds: float = 0.0
    errors: List[str] = None
    performance_metrics: Dict[str, Any] = None

    def __post_init__(self):
        """Initialize default values for mutable fields."""
        if self.errors is None:
            self.errors = []
        if self.performance_metrics is None:
            self.performance_metrics = {}

    def add_shard_result(self, shard_result: ShardResult) -> None:
        """Fold one worker's outcome into the run totals."""
        self.documents_processed += shard_result.documents_processed
        self.documents_skipped += shard_result.documents_skipped
        self.unmapped_paths += shard_result.unmapped_paths

        if not shard_result.success:
            self.shards_failed += 1
            self.errors.append(
                f"{shard_result.shard_path}: {shard_result.error_stage}: {shard_result.error_message}"
            )
        elif shard_result.cancelled:
            self.shards_cancelled += 1
            self.cancelled = True
        else:
            self.shards_processed += 1

        for failure in shard_result.failures:
            self.errors.append(f"{failure.document_path}: {failure.error_stage}: {failure.error_message}")

    @property
    def documents_seen(self) -> int:
        return self.documents_processed + self.documents_skipped

    @property
    def success_rate(self) -> float:
        """Calculate the document success rate as a percentage."""
        if self.documents_seen == 0:
            return 0.0
        return (self.documents_processed / self.documents_seen) * 100.0
