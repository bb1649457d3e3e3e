"""
Per-shard worker loop shared by the sequential and parallel schedulers.

A worker owns one shard from start to finish and processes its documents
strictly in listing order: flatten, materialize, hand the row to the emitter,
count progress. Document-level failures are logged and skipped; anything that
escapes (a sink failure in particular) is left to the scheduler.
"""

import logging
import time

from pathlib import Path
from typing import Callable, List, Optional

from ..exceptions import DocumentReadError, XMLParsingError
from ..mapping.row_materializer import RowMaterializer
from ..models import DocumentFailure, Shard, ShardResult
from ..monitoring.progress_monitor import ProgressMonitor
from ..parsing.xml_flattener import XMLFlattener


RowEmitter = Callable[[Shard, Path, List[str]], None]


class ShardWorker:
    """
    Drives Flattener -> Materializer -> emitter for every document of a shard.

    The stop check is consulted before each document, so a stop request takes
    effect at the next document boundary and never in the middle of a row.
    """

    def __init__(self, flattener: XMLFlattener, materializer: RowMaterializer,
                 emit_row: RowEmitter, progress: Optional[ProgressMonitor] = None,
                 should_stop: Optional[Callable[[], bool]] = None):
        """
        Initialize the worker.

        Args:
            flattener: Worker-private flattener
            materializer: Worker-private materializer bound to the shared header
            emit_row: Callable receiving (shard, document_path, row) for each row
            progress: Shared progress monitor, incremented per emitted row
            should_stop: Callable returning True once a stop was requested
        """
        self.flattener = flattener
        self.materializer = materializer
        self.emit_row = emit_row
        self.progress = progress
        self.should_stop = should_stop or (lambda: False)
        self.logger = logging.getLogger(__name__)
        self.last_result: Optional[ShardResult] = None

    def process(self, shard: Shard) -> ShardResult:
        """
        Process every document of a shard in order.

        Args:
            shard: Work unit to process

        Returns:
            ShardResult with processed/skipped counts and document failures
        """
        start_time = time.time()
        result = ShardResult(shard_path=str(shard.path))
        self.last_result = result

        for document_path in shard.documents:
            if self.should_stop():
                result.cancelled = True
                self.logger.info(f"Stop requested, leaving shard {shard.path} after "
                                 f"{result.documents_processed + result.documents_skipped}/{len(shard)} documents")
                break

            try:
                record = self.flattener.flatten_file(document_path)
            except DocumentReadError as e:
                self._skip(result, shard, document_path, 'read', e)
                continue
            except XMLParsingError as e:
                self._skip(result, shard, document_path, 'parsing', e)
                continue

            row = self.materializer.materialize(record)
            self.emit_row(shard, document_path, row)

            result.documents_processed += 1
            result.unmapped_paths += self.materializer.last_unmapped_count
            if self.progress is not None:
                self.progress.increment()

        result.processing_time = time.time() - start_time
        return result

    def _skip(self, result: ShardResult, shard: Shard, document_path: Path, stage: str, error: Exception) -> None:
        result.documents_skipped += 1
        result.failures.append(DocumentFailure(
            document_path=str(document_path),
            error_stage=stage,
            error_message=str(error),
        ))
        self.logger.warning(f"Skipping document {document_path} in shard {shard.path} ({stage}): {error}")
