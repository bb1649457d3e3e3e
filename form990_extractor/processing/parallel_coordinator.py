"""
Parallel Processing Coordinator - Multiprocessing Worker Pool Manager

Orchestrates parallel shard processing across multiple CPU cores using a worker pool.
Each worker owns a shard from start to finish: it flattens the shard's documents in
listing order, materializes one row per document and hands the rows back to the
parent process, where a single writer thread appends them to the shared sink.

KEY FEATURES:
- Multiprocessing: N independent worker processes (isolated memory/Python interpreters)
- Bounded dispatch: at most N shards in flight, gated by a semaphore in the parent
- Single writer: rows travel over one bounded queue to one thread that owns the sink
- Cancellation: request_stop() halts dispatch and workers stop at the next document boundary

ARCHITECTURE:
- Data flow: Shard -> Worker (Flattener -> Materializer) -> row queue -> writer thread -> CsvSink
- Shared read-only: the HeaderSchema, pickled once into every worker by the pool initializer
- Shared synchronized: the row queue (FIFO per worker), the progress counter (locked value)
"""

import logging
import multiprocessing as mp
import threading
import time

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..exceptions import SinkError, DocumentReadError, XMLParsingError
from ..interfaces import BatchProcessorInterface, RowSinkInterface
from ..mapping.row_materializer import RowMaterializer
from ..models import HeaderSchema, ProcessingConfig, ProcessingResult, Shard, ShardResult
from ..monitoring.progress_monitor import ProgressMonitor
from ..parsing.xml_flattener import XMLFlattener
from .shard_worker import ShardWorker


_END_OF_ROWS = None


@dataclass
class WorkItem:
    """Work item for the parallel processing pool."""
    sequence: int
    shard: Shard


class ParallelCoordinator(BatchProcessorInterface):
    """
    Multiprocessing Pool Manager for parallel shard processing.

    Worker Lifecycle:
    1. process_shards() starts a Manager (row queue + cancel event) and a writer thread
    2. mp.Pool(num_workers) runs _init_worker() once per worker process
       - Builds a private XMLFlattener and RowMaterializer bound to the shared header
    3. The parent acquires a slot, checks for a stop request, then dispatches one
       _process_work_item() per shard; the slot is released when the shard completes
    4. Workers push (shard, document, row) tuples onto the row queue; the writer thread
       appends them to the sink one at a time
    5. After every dispatched shard completes, the writer receives an end marker and exits

    Failure handling:
    - Document-level errors are handled inside the worker (logged and skipped)
    - A worker that dies or raises yields a failed ShardResult; the run continues
    - A sink failure is fatal: the writer stops writing, sets the cancel event so no
      new shards start, and process_shards() raises the SinkError after draining
    """

    def __init__(self, header: HeaderSchema, sink: RowSinkInterface,
                 num_workers: Optional[int] = None, config: Optional[ProcessingConfig] = None,
                 progress: Optional[ProgressMonitor] = None, log_level: Optional[int] = None):
        """
        Initialize the parallel coordinator.

        Args:
            header: Immutable output header (shared read-only by all workers)
            sink: Opened sink; only the parent's writer thread calls append()
            num_workers: Concurrency limit (defaults to config.max_workers)
            config: Processing configuration
            progress: Shared progress monitor (created if omitted)
            log_level: Logging level for worker processes (defaults to this module's effective level)
        """
        self.logger = logging.getLogger(__name__)
        self.header = header
        self.sink = sink
        self.config = config or ProcessingConfig()
        self.num_workers = num_workers or self.config.max_workers
        self.progress = progress or ProgressMonitor(self.config.progress_interval)
        self.log_level = log_level

        # Local flags only: request_stop() may run inside a signal handler, so it
        # never touches the manager proxies itself
        self._stop_requested = threading.Event()
        self._halted = threading.Event()
        self._sink_error: Optional[SinkError] = None
        self.rows_written = 0

        self.logger.info(f"ParallelCoordinator initialized with {self.num_workers} workers")

    def request_stop(self) -> None:
        """Stop dispatching new shards and ask running workers to stop at the next document."""
        self._stop_requested.set()
        self._halted.set()
        self.logger.warning("Stop requested: no new shards will be dispatched")

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def process_shards(self, shards: Sequence[Shard]) -> ProcessingResult:
        """
        Process shards in parallel, blocking until every dispatched shard is done.

        Args:
            shards: Work units from discovery

        Returns:
            ProcessingResult with document and shard totals

        Raises:
            SinkError: If the sink failed while the run was in progress
        """
        result = ProcessingResult(shards_total=len(shards))
        if not shards:
            return result

        start_time = time.time()
        self._sink_error = None
        self.rows_written = 0
        if not self._stop_requested.is_set():
            self._halted.clear()
        pool_size = min(self.num_workers, len(shards))
        log_level = self.log_level if self.log_level is not None else self.logger.getEffectiveLevel()

        self.logger.info(f"Starting parallel processing of {len(shards)} shards with {pool_size} workers")

        with mp.Manager() as manager:
            row_queue = manager.Queue(maxsize=self.config.row_queue_size)
            cancel_event = manager.Event()
            run_finished = threading.Event()

            writer = threading.Thread(
                target=self._drain_rows,
                args=(row_queue,),
                name="csv-sink-writer",
                daemon=True
            )
            relay = threading.Thread(
                target=self._relay_stop,
                args=(cancel_event, run_finished),
                name="stop-relay",
                daemon=True
            )
            writer.start()
            relay.start()

            try:
                shard_results = self._dispatch(shards, pool_size, row_queue, cancel_event, log_level, result)
            finally:
                row_queue.put(_END_OF_ROWS)
                writer.join()
                run_finished.set()
                relay.join()

        for shard_result in shard_results:
            result.add_shard_result(shard_result)

        processing_time = time.time() - start_time
        result.processing_time_seconds = processing_time
        result.performance_metrics.update({
            'documents_per_second': result.documents_processed / processing_time if processing_time > 0 else 0,
            'documents_per_minute': (result.documents_processed / processing_time * 60) if processing_time > 0 else 0,
            'parallel_efficiency': self._calculate_parallel_efficiency(shard_results, processing_time, pool_size),
            'worker_count': pool_size,
            'rows_written': self.rows_written,
        })

        if self._sink_error is not None:
            raise self._sink_error

        self.logger.info(f"Parallel processing completed: {result.shards_processed}/{len(shards)} shards, "
                         f"{result.documents_processed} documents in {processing_time:.2f}s "
                         f"({result.performance_metrics['documents_per_minute']:.1f} docs/min)")
        return result

    def _dispatch(self, shards: Sequence[Shard], pool_size: int, row_queue, cancel_event,
                  log_level: int, result: ProcessingResult) -> List[ShardResult]:
        slots = threading.BoundedSemaphore(pool_size)

        def release_slot(_):
            slots.release()

        pending = []
        shard_results: List[ShardResult] = []

        with mp.Pool(
            processes=pool_size,
            initializer=_init_worker,
            initargs=(self.header, self.config, row_queue, cancel_event, self.progress, log_level)
        ) as pool:

            for sequence, shard in enumerate(shards, 1):
                slots.acquire()
                if self._halted.is_set():
                    slots.release()
                    not_dispatched = len(shards) - sequence + 1
                    result.shards_cancelled += not_dispatched
                    result.cancelled = True
                    self.logger.warning(f"Dispatch halted: {not_dispatched} shards not started")
                    break

                async_result = pool.apply_async(
                    _process_work_item,
                    (WorkItem(sequence=sequence, shard=shard),),
                    callback=release_slot,
                    error_callback=release_slot
                )
                pending.append((shard, async_result))

            # Collect results in dispatch order
            for completed, (shard, async_result) in enumerate(pending, 1):
                try:
                    shard_result = async_result.get()
                except Exception as e:
                    self.logger.error(f"Worker process failed on shard {shard.path}: {e}")
                    shard_result = ShardResult(
                        shard_path=str(shard.path),
                        success=False,
                        error_stage='worker_process',
                        error_message=str(e)
                    )
                shard_results.append(shard_result)

                if completed % 10 == 0 or completed == len(pending):
                    self._log_progress(completed, len(shards))

            pool.close()
            pool.join()

        return shard_results

    def _drain_rows(self, row_queue) -> None:
        """Writer thread: the only caller of sink.append() during a parallel run."""
        while True:
            item = row_queue.get()
            if item is _END_OF_ROWS:
                break
            # After a sink failure keep draining so blocked workers can finish
            if self._sink_error is not None:
                continue

            shard_path, document_path, row = item
            try:
                self.sink.append(row)
                self.rows_written += 1
            except SinkError as e:
                self._sink_error = e
                self.logger.error(f"Fatal sink error while writing {document_path} from {shard_path}: {e}")
                self._halted.set()

    def _relay_stop(self, cancel_event, run_finished: threading.Event) -> None:
        """Forward a local halt to the workers' shared cancel event."""
        while not run_finished.is_set():
            if self._halted.wait(0.1):
                cancel_event.set()
                return

    def _log_progress(self, completed: int, total: int) -> None:
        """Log shard completion with document throughput."""
        self.logger.info(f"Progress: {completed}/{total} shards complete "
                         f"({completed / total * 100:.1f}%) - {self.progress.count} documents processed")

    def _calculate_parallel_efficiency(self, results: List[ShardResult], total_time: float, pool_size: int) -> float:
        """
        Ratio of actual to ideal speedup (0.0 to 1.0).

        Sequential time is the sum of the workers' shard times; ideal speedup is
        the pool size.
        """
        if not results or total_time <= 0 or pool_size <= 0:
            return 0.0

        sequential_time = sum(r.processing_time for r in results)
        actual_speedup = sequential_time / total_time
        return min(actual_speedup / pool_size, 1.0)


# Global worker state (initialized once per worker process)
_worker_shard_worker: Optional[ShardWorker] = None
_worker_row_queue = None


def _init_worker(header: HeaderSchema, config: ProcessingConfig, row_queue, cancel_event,
                 progress: ProgressMonitor, log_level: int):
    """
    Initialize a worker process.

    Runs once per worker process at startup. Each worker gets its own flattener
    and materializer; the header is a read-only copy.
    """
    global _worker_shard_worker, _worker_row_queue

    # Forked workers inherit the parent's handlers; spawned ones start bare
    package_logger = logging.getLogger('form990_extractor')
    package_logger.setLevel(log_level)
    if not package_logger.handlers:
        logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        _worker_row_queue = row_queue
        _worker_shard_worker = ShardWorker(
            flattener=XMLFlattener(config),
            materializer=RowMaterializer(header, config.multi_value_separator),
            emit_row=_emit_row,
            progress=progress,
            should_stop=cancel_event.is_set
        )
    except Exception as e:
        logging.error(f"Worker initialization failed: {e}")
        raise


def _emit_row(shard: Shard, document_path, row: List[str]) -> None:
    _worker_row_queue.put((str(shard.path), str(document_path), row))


def _process_work_item(work_item: WorkItem) -> ShardResult:
    """Process a single shard in a worker process."""
    try:
        return _worker_shard_worker.process(work_item.shard)

    except Exception as e:
        if isinstance(e, DocumentReadError):
            error_stage = 'read'
        elif isinstance(e, XMLParsingError):
            error_stage = 'parsing'
        elif isinstance(e, (OSError, EOFError)):
            error_stage = 'row_queue'
        else:
            error_stage = 'unknown'

        logging.getLogger(__name__).error(f"Shard {work_item.shard.path} failed ({error_stage}): {e}")

        # Keep the counts for documents already handed to the writer
        partial = _worker_shard_worker.last_result if _worker_shard_worker is not None else None
        if partial is None or partial.shard_path != str(work_item.shard.path):
            partial = ShardResult(shard_path=str(work_item.shard.path))
        partial.success = False
        partial.error_stage = error_stage
        partial.error_message = str(e)
        return partial
