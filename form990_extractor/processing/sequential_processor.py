"""
Sequential Shard Processor - Single-process processing for testing and debugging.

Implements the same BatchProcessorInterface as ParallelCoordinator but processes
shards one after another in the calling process. Useful for:
- Unit testing (easier to debug)
- Integration testing (no multiprocessing complexity)
- Small corpora where pool startup costs more than it saves
- Comparing sequential vs parallel performance
"""

import logging
import threading
import time

from typing import Optional, Sequence

from ..interfaces import BatchProcessorInterface, RowSinkInterface
from ..mapping.row_materializer import RowMaterializer
from ..models import HeaderSchema, ProcessingConfig, ProcessingResult, Shard
from ..monitoring.progress_monitor import ProgressMonitor
from ..parsing.xml_flattener import XMLFlattener
from .shard_worker import ShardWorker


class SequentialProcessor(BatchProcessorInterface):
    """
    Single-process shard processor.

    Runs the same ShardWorker loop as the pool workers, but rows go straight to
    sink.append() instead of through the row queue. A SinkError propagates
    immediately and ends the run.
    """

    def __init__(self, header: HeaderSchema, sink: RowSinkInterface,
                 config: Optional[ProcessingConfig] = None,
                 progress: Optional[ProgressMonitor] = None):
        """
        Initialize the sequential processor.

        Args:
            header: Output header
            sink: Opened sink receiving one row per document
            config: Processing configuration
            progress: Progress monitor (created if omitted)
        """
        self.logger = logging.getLogger(__name__)
        self.header = header
        self.sink = sink
        self.config = config or ProcessingConfig()
        self.progress = progress or ProgressMonitor(self.config.progress_interval)

        self._stop_requested = threading.Event()
        self.worker = ShardWorker(
            flattener=XMLFlattener(self.config),
            materializer=RowMaterializer(header, self.config.multi_value_separator),
            emit_row=self._append_row,
            progress=self.progress,
            should_stop=self._stop_requested.is_set
        )

        self.logger.info("SequentialProcessor initialized (single process)")

    def request_stop(self) -> None:
        """Stop after the document currently being processed."""
        self._stop_requested.set()
        self.logger.warning("Stop requested: remaining shards will not be processed")

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def _append_row(self, shard: Shard, document_path, row) -> None:
        self.sink.append(row)

    def process_shards(self, shards: Sequence[Shard]) -> ProcessingResult:
        """
        Process shards one at a time.

        Raises:
            SinkError: If the sink fails; rows already written stay in the output
        """
        result = ProcessingResult(shards_total=len(shards))
        if not shards:
            return result

        start_time = time.time()
        self.logger.info(f"Starting sequential processing of {len(shards)} shards")

        for sequence, shard in enumerate(shards, 1):
            if self._stop_requested.is_set():
                not_started = len(shards) - sequence + 1
                result.shards_cancelled += not_started
                result.cancelled = True
                self.logger.warning(f"Processing halted: {not_started} shards not started")
                break

            shard_result = self.worker.process(shard)
            result.add_shard_result(shard_result)
            self.logger.debug(f"Shard {sequence}/{len(shards)} {shard.path}: "
                              f"{shard_result.documents_processed} processed, "
                              f"{shard_result.documents_skipped} skipped")

        processing_time = time.time() - start_time
        result.processing_time_seconds = processing_time
        result.performance_metrics.update({
            'documents_per_second': result.documents_processed / processing_time if processing_time > 0 else 0,
            'documents_per_minute': (result.documents_processed / processing_time * 60) if processing_time > 0 else 0,
            'worker_count': 1,
            'rows_written': result.documents_processed,
        })

        self.logger.info(f"Sequential processing complete - Shards: {result.shards_processed}/{len(shards)}, "
                         f"Documents: {result.documents_processed} processed, {result.documents_skipped} skipped, "
                         f"Time: {processing_time:.2f}s")
        return result
