"""
Abstract interfaces for the Form 990 XML flattening system.

This module defines the contracts that the flattener, materializer, sink and
schedulers implement so that the pipeline can swap implementations (for
example the sequential processor in tests, the process pool in production).
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Dict, Any, List, Sequence, Union

from .models import FlatRecord, HeaderSchema, ProcessingResult, Shard


class XMLFlattenerInterface(ABC):
    """Abstract interface for XML flattening components."""

    @abstractmethod
    def flatten(self, stream: BinaryIO, document_path: str = None) -> FlatRecord:
        """
        Flatten one XML document read from a binary stream.

        Args:
            stream: Open binary stream positioned at the start of the document
            document_path: Optional path of the document, used in errors and logs

        Returns:
            FlatRecord holding every visited path and its text values

        Raises:
            XMLParsingError: If the document is malformed
        """
        pass

    @abstractmethod
    def flatten_file(self, document_path: Union[str, Path]) -> FlatRecord:
        """
        Open and flatten one XML document from disk.

        Raises:
            DocumentReadError: If the file cannot be opened or read
            XMLParsingError: If the document is malformed
        """
        pass


class RowMaterializerInterface(ABC):
    """Abstract interface for reconciling records against the output header."""

    @abstractmethod
    def materialize(self, record: FlatRecord) -> List[str]:
        """
        Produce exactly one fixed-width row for a record.

        Args:
            record: Flattened document

        Returns:
            List of cells, one per header column
        """
        pass


class RowSinkInterface(ABC):
    """Abstract interface for the serialized output table writer."""

    @abstractmethod
    def open(self) -> None:
        """Create the output fresh and write the header row."""
        pass

    @abstractmethod
    def append(self, row: Sequence[str]) -> None:
        """
        Append one row durably.

        Raises:
            SinkError: If the row cannot be written or flushed
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Flush and release the output."""
        pass


class BatchProcessorInterface(ABC):
    """Abstract interface for shard schedulers."""

    @abstractmethod
    def process_shards(self, shards: Sequence[Shard]) -> ProcessingResult:
        """
        Process every shard, blocking until all dispatched work is complete.

        Args:
            shards: Work units produced by discovery

        Returns:
            ProcessingResult with document, shard and timing totals
        """
        pass

    @abstractmethod
    def request_stop(self) -> None:
        """Stop dispatching new shards and ask in-flight workers to finish early."""
        pass


class PerformanceMonitorInterface(ABC):
    """Abstract interface for run-level performance monitoring."""

    @abstractmethod
    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        pass

    @abstractmethod
    def stop_monitoring(self) -> Dict[str, Any]:
        """Stop monitoring and return the collected metrics."""
        pass

    @abstractmethod
    def start_stage(self, stage_name: str) -> None:
        """Start timing a named stage."""
        pass

    @abstractmethod
    def end_stage(self, stage_name: str) -> float:
        """End timing a named stage and return its duration in seconds."""
        pass


class HeaderProviderInterface(ABC):
    """Abstract interface for components that supply the output header."""

    @abstractmethod
    def load_header_schema(self, header_path: str = None) -> HeaderSchema:
        """
        Load the immutable output header.

        Raises:
            ConfigurationError: If the header source cannot be read
            SchemaValidationError: If the header definition is invalid
        """
        pass
