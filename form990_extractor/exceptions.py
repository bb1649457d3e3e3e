"""
Custom exceptions for the Form 990 XML flattening system.

This module defines specific exception types for the error conditions that can
occur while discovering shards, flattening XML documents and writing rows.
Fatal errors (configuration, discovery root, sink) abort the run; document-level
errors are logged by the workers and the document is skipped.
"""


class XMLExtractionError(Exception):
    """Base exception for all flattening related errors."""

    def __init__(self, message: str, source_path: str = None):
        """
        Initialize extraction error.

        Args:
            message: Error description
            source_path: Optional path of the file or directory that caused the error
        """
        super().__init__(message)
        self.source_path = source_path


class XMLParsingError(XMLExtractionError):
    """Exception raised when an XML document is malformed or the decoder fails mid-stream."""

    def __init__(self, message: str, source_path: str = None, line: int = None, column: int = None):
        """
        Initialize XML parsing error.

        Args:
            message: Error description
            source_path: Optional path of the document that failed to parse
            line: Line number reported by the parser, if known
            column: Column number reported by the parser, if known
        """
        super().__init__(message, source_path)
        self.line = line
        self.column = column


class DocumentReadError(XMLExtractionError):
    """Exception raised when a source document cannot be opened or read."""
    pass


class ShardDiscoveryError(XMLExtractionError):
    """Exception raised when the data root itself cannot be listed."""
    pass


class SinkError(XMLExtractionError):
    """
    Exception raised when the output table cannot be created, written or flushed.

    Always fatal: every worker shares the sink, so a failed sink invalidates
    all later writes.
    """
    pass


class SchemaValidationError(XMLExtractionError):
    """Exception raised when the output header definition is invalid."""
    pass


class ConfigurationError(XMLExtractionError):
    """Exception raised when configuration is invalid or missing."""
    pass


class ArchiveExtractionError(XMLExtractionError):
    """Exception raised when a source archive cannot be extracted safely."""
    pass
