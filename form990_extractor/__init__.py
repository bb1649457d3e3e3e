"""
Form 990 XML Flattening System

A concurrent tool for flattening IRS Form 990 e-file XML documents into a
single CSV table: one row per document, one column per header field.
"""

__version__ = "1.0.0"

# Import core models and interfaces for easy access
from .models import (
    ColumnSource,
    FlatRecord,
    HeaderColumn,
    HeaderSchema,
    ProcessingConfig,
    ProcessingResult,
    Shard,
    ShardResult
)

from .interfaces import (
    XMLFlattenerInterface,
    RowMaterializerInterface,
    RowSinkInterface,
    BatchProcessorInterface,
    PerformanceMonitorInterface,
    HeaderProviderInterface
)

from .exceptions import (
    XMLExtractionError,
    XMLParsingError,
    DocumentReadError,
    ShardDiscoveryError,
    SinkError,
    SchemaValidationError,
    ConfigurationError,
    ArchiveExtractionError
)

__all__ = [
    # Core models
    "ColumnSource",
    "FlatRecord",
    "HeaderColumn",
    "HeaderSchema",
    "ProcessingConfig",
    "ProcessingResult",
    "Shard",
    "ShardResult",

    # Interfaces
    "XMLFlattenerInterface",
    "RowMaterializerInterface",
    "RowSinkInterface",
    "BatchProcessorInterface",
    "PerformanceMonitorInterface",
    "HeaderProviderInterface",

    # Exceptions
    "XMLExtractionError",
    "XMLParsingError",
    "DocumentReadError",
    "ShardDiscoveryError",
    "SinkError",
    "SchemaValidationError",
    "ConfigurationError",
    "ArchiveExtractionError"
]
