"""
Row materialization: reconcile a FlatRecord against the fixed output header.

Every record produces exactly one row with one cell per header column, no
matter which paths the document happened to contain.
"""

import logging

from typing import List, Optional

from ..interfaces import RowMaterializerInterface
from ..models import ColumnSource, FlatRecord, HeaderSchema


class RowMaterializer(RowMaterializerInterface):
    """
    Turn flattened documents into fixed-width rows.

    Column resolution:
    - FILE_NAME columns take the base name of the record's document
    - XML_PATH columns look at their bound paths in order and use the first one
      that holds any values
    - No values gives an empty cell, one value is used verbatim, several values
      are joined in document order with the configured separator

    Paths in the record that no column binds are counted and dropped. Counts are
    kept per instance, so each worker owns its materializer and no locking is
    needed.
    """

    def __init__(self, header: HeaderSchema, multi_value_separator: str = "|"):
        """
        Initialize the materializer.

        Args:
            header: Immutable output header shared by all workers
            multi_value_separator: Delimiter placed between repeated values ("" concatenates)
        """
        self.header = header
        self.multi_value_separator = multi_value_separator or ""
        self.logger = logging.getLogger(__name__)

        self.rows_materialized = 0
        self.unmapped_path_count = 0
        self.last_unmapped_count = 0
        self.multi_value_cells = 0

    def materialize(self, record: FlatRecord) -> List[str]:
        """
        Produce exactly one row for a record.

        Args:
            record: Flattened document

        Returns:
            List of cells with len(row) == len(header)
        """
        row = [self._resolve_cell(column, record) for column in self.header.columns]

        unmapped = self.count_unmapped_paths(record)
        self.last_unmapped_count = unmapped
        self.unmapped_path_count += unmapped
        self.rows_materialized += 1

        if unmapped and self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"{record.document_path}: dropped {unmapped} paths with no header column")
        return row

    def _resolve_cell(self, column, record: FlatRecord) -> str:
        if column.source is ColumnSource.FILE_NAME:
            return record.file_name

        values = self._first_bound_values(column.paths, record)
        if not values:
            return ""
        if len(values) == 1:
            return values[0]
        self.multi_value_cells += 1
        return self.multi_value_separator.join(values)

    @staticmethod
    def _first_bound_values(paths, record: FlatRecord) -> Optional[List[str]]:
        for path in paths:
            values = record.get(path)
            if values:
                return values
        return None

    def count_unmapped_paths(self, record: FlatRecord) -> int:
        """Count record paths that no header column binds."""
        bound = self.header.bound_paths
        return sum(1 for path in record if path not in bound)

    def reset_stats(self) -> None:
        """Reset counters."""
        self.rows_materialized = 0
        self.unmapped_path_count = 0
        self.last_unmapped_count = 0
        self.multi_value_cells = 0
