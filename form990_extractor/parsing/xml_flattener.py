"""
Streaming XML flattening engine for Form 990 e-file documents.

This module turns one XML document into a FlatRecord: a mapping from the dotted
chain of ancestor element names to the text values observed at that chain.
Documents are schema-less from the flattener's point of view, so every element
is visited and every non-empty text run is kept.
"""

import logging

from io import BytesIO
from pathlib import Path
from typing import BinaryIO, List, Optional, Union, Dict, Any

from lxml import etree

from ..interfaces import XMLFlattenerInterface
from ..exceptions import XMLParsingError, DocumentReadError
from ..models import FlatRecord, ProcessingConfig
from ..utils import StringUtils, PathUtils


class _FlattenTarget:
    """
    lxml parser target that records text per element path.

    The parser pushes start/end/data events in document order. An explicit
    stack of open element paths replaces recursion, so pathological nesting
    depth never hits the interpreter recursion limit.

    Text is buffered until the next markup boundary (start tag, end tag,
    comment or processing instruction) and then attributed to the innermost
    open element. Text before the root element or after it closes is ignored.
    """

    def __init__(self, record: FlatRecord):
        self.record = record
        self._path_stack: List[str] = [""]
        self._text_parts: List[str] = []
        self.max_depth = 0

    def start(self, tag, attrib):
        self._flush_text()
        path = PathUtils.join_path(self._path_stack[-1], StringUtils.clean_tag_name(tag))
        self._path_stack.append(path)
        self.record.register(path)
        if len(self._path_stack) - 1 > self.max_depth:
            self.max_depth = len(self._path_stack) - 1

    def end(self, tag):
        self._flush_text()
        if len(self._path_stack) > 1:
            self._path_stack.pop()

    def data(self, data):
        self._text_parts.append(data)

    def comment(self, text):
        self._flush_text()

    def pi(self, target, data=None):
        self._flush_text()

    def close(self) -> FlatRecord:
        self._flush_text()
        return self.record

    def _flush_text(self) -> None:
        if not self._text_parts:
            return
        text = "".join(self._text_parts).strip()
        self._text_parts.clear()
        if text and len(self._path_stack) > 1:
            self.record.add(self._path_stack[-1], text)


class XMLFlattener(XMLFlattenerInterface):
    """
    Event-driven XML flattener built on lxml's feed parser.

    Flattening rules:
    - The path of an element is its parent's path plus "." plus its local name
      (namespace URIs and prefixes are dropped), e.g. ".Return.ReturnHeader.TaxYr"
    - Every opened element registers its path, so columns bound to empty
      elements still resolve to a blank cell
    - Trimmed, non-empty text is appended to the innermost open element's path
    - Repeated elements keep all their values in occurrence order
    - Any syntax error aborts the document; the partial record is discarded

    Documents are read in chunks and fed to the parser, so a worker never needs
    more than one chunk of raw bytes in memory besides the record itself.
    """

    def __init__(self, config: Optional[ProcessingConfig] = None):
        """
        Initialize the flattener.

        Args:
            config: Processing configuration (only read_chunk_size is used here)
        """
        self.config = config or ProcessingConfig()
        self.logger = logging.getLogger(__name__)

        # Performance tracking
        self.parse_count = 0
        self.failure_count = 0
        self.max_depth_seen = 0

    def _create_parser(self, target: _FlattenTarget) -> etree.XMLParser:
        return etree.XMLParser(
            target=target,
            recover=False,  # Malformed documents must fail, not be silently repaired
            resolve_entities=False,  # Security: don't resolve external entities
            no_network=True,  # Security: disable network access
            huge_tree=True,  # Some schedules exceed libxml2's default depth/size limits
        )

    def flatten(self, stream: BinaryIO, document_path: str = None) -> FlatRecord:
        """
        Flatten one XML document read from a binary stream.

        Args:
            stream: Open binary stream positioned at the start of the document
            document_path: Optional path of the document, used in errors and logs

        Returns:
            FlatRecord for the document

        Raises:
            XMLParsingError: If the document is malformed or empty
            DocumentReadError: If reading the stream fails mid-document
        """
        self.parse_count += 1
        record = FlatRecord(document_path)
        target = _FlattenTarget(record)
        parser = self._create_parser(target)
        chunk_size = self.config.read_chunk_size

        try:
            while True:
                try:
                    chunk = stream.read(chunk_size)
                except OSError as e:
                    raise DocumentReadError(f"Failed to read document: {e}", document_path)
                if not chunk:
                    break
                parser.feed(chunk)
            parser.close()

        except etree.XMLSyntaxError as e:
            self.failure_count += 1
            line, column = getattr(e, 'position', (None, None))
            raise XMLParsingError(f"XML syntax error: {e}", document_path, line, column)
        except DocumentReadError:
            self.failure_count += 1
            raise

        if target.max_depth > self.max_depth_seen:
            self.max_depth_seen = target.max_depth

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"Flattened {document_path or 'stream'}: {len(record)} paths, depth {target.max_depth}")
        return record

    def flatten_file(self, document_path: Union[str, Path]) -> FlatRecord:
        """
        Open and flatten one XML document from disk.

        Args:
            document_path: Path of the XML file

        Returns:
            FlatRecord for the document

        Raises:
            DocumentReadError: If the file cannot be opened or read
            XMLParsingError: If the document is malformed
        """
        document_path = str(document_path)
        try:
            stream = open(document_path, 'rb')
        except OSError as e:
            self.failure_count += 1
            raise DocumentReadError(f"Failed to open document: {e}", document_path)

        with stream:
            return self.flatten(stream, document_path)

    def flatten_string(self, xml_content: Union[str, bytes], document_path: str = None) -> FlatRecord:
        """Flatten an in-memory document (used by tests and diagnostics)."""
        if isinstance(xml_content, str):
            xml_content = xml_content.encode('utf-8')
        return self.flatten(BytesIO(xml_content), document_path)

    def get_performance_stats(self) -> Dict[str, Any]:
        """
        Get flattener statistics.

        Returns:
            Dictionary containing parse counts and the deepest nesting seen
        """
        return {
            'parse_count': self.parse_count,
            'failure_count': self.failure_count,
            'max_depth_seen': self.max_depth_seen,
        }

    def reset_stats(self) -> None:
        """Reset performance statistics."""
        self.parse_count = 0
        self.failure_count = 0
        self.max_depth_seen = 0
