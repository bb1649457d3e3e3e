"""
Run orchestration: header -> sink -> discovery -> scheduler -> summary.

FlattenPipeline is what the CLI runs. It owns the sink for the duration of a
run and guarantees the header row is on disk before any worker starts and the
file is closed on every exit path, fatal errors included.
"""

import logging

from pathlib import Path
from typing import Optional, Union

from .interfaces import BatchProcessorInterface
from .models import HeaderSchema, ProcessingConfig, ProcessingResult
from .monitoring.performance_monitor import PerformanceMonitor
from .monitoring.progress_monitor import ProgressMonitor
from .output.csv_sink import CsvSink
from .processing.parallel_coordinator import ParallelCoordinator
from .processing.sequential_processor import SequentialProcessor
from .processing.shard_discoverer import ShardDiscoverer


class FlattenPipeline:
    """
    One flattening run over a data root.

    Usage:
        pipeline = FlattenPipeline(data_root, output_path, header, config)
        result = pipeline.run()

    request_stop() may be called from another thread (or a signal handler)
    while run() is in progress.
    """

    def __init__(self, data_root: Union[str, Path], output_path: Union[str, Path],
                 header: HeaderSchema, config: Optional[ProcessingConfig] = None,
                 sequential: bool = False, log_level: Optional[int] = None):
        """
        Initialize the pipeline.

        Args:
            data_root: Directory with one subdirectory per extracted archive
            output_path: CSV file to create (truncated if it exists)
            header: Output header
            config: Processing configuration
            sequential: Process shards in this process instead of a worker pool
            log_level: Logging level for worker processes
        """
        self.logger = logging.getLogger(__name__)
        self.data_root = Path(data_root)
        self.output_path = Path(output_path)
        self.header = header
        self.config = config or ProcessingConfig()
        self.sequential = sequential
        self.log_level = log_level

        self.progress = ProgressMonitor(self.config.progress_interval)
        self.performance_monitor = PerformanceMonitor()
        self.discoverer = ShardDiscoverer(self.data_root, self.config.archive_extensions)
        self.processor: Optional[BatchProcessorInterface] = None
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ask the running scheduler to stop at the next shard/document boundary."""
        self._stop_requested = True
        if self.processor is not None:
            self.processor.request_stop()

    def _create_processor(self, sink: CsvSink) -> BatchProcessorInterface:
        if self.sequential:
            return SequentialProcessor(self.header, sink, self.config, self.progress)
        return ParallelCoordinator(
            self.header, sink,
            num_workers=self.config.max_workers,
            config=self.config,
            progress=self.progress,
            log_level=self.log_level
        )

    def run(self) -> ProcessingResult:
        """
        Execute the run.

        Returns:
            ProcessingResult with document, shard and timing totals

        Raises:
            SinkError: If the output cannot be created or written
            ShardDiscoveryError: If the data root cannot be listed
        """
        self.logger.info(f"Flattening {self.data_root} into {self.output_path} "
                         f"({len(self.header)} columns, "
                         f"{'sequential' if self.sequential else f'{self.config.max_workers} workers'})")
        self.performance_monitor.start_monitoring()

        sink = CsvSink(self.output_path, self.header.column_names, fsync_each_row=self.config.fsync_each_row)
        try:
            sink.open()

            with self.performance_monitor.stage('discovery'):
                shards = self.discoverer.discover()

            self.processor = self._create_processor(sink)
            if self._stop_requested:
                self.processor.request_stop()

            with self.performance_monitor.stage('processing'):
                result = self.processor.process_shards(shards)
        finally:
            sink.close()
            summary = self.performance_monitor.stop_monitoring()

        result.shards_skipped += self.discoverer.skipped_shards
        result.performance_metrics['stage_timings'] = summary.get('stage_timings', {})
        result.performance_metrics['peak_memory_mb'] = summary.get('resource_usage', {}).get('peak_memory_mb', 0.0)
        result.performance_metrics['rows_written'] = sink.rows_written

        self._log_summary(result)
        return result

    def _log_summary(self, result: ProcessingResult) -> None:
        self.logger.info("=" * 60)
        self.logger.info("Flattening run summary")
        self.logger.info(f"  Documents processed: {result.documents_processed}")
        self.logger.info(f"  Documents skipped:   {result.documents_skipped}")
        self.logger.info(f"  Unmapped paths:      {result.unmapped_paths}")
        self.logger.info(f"  Shards processed:    {result.shards_processed}/{result.shards_total}")
        self.logger.info(f"  Shards skipped:      {result.shards_skipped}")
        self.logger.info(f"  Shards failed:       {result.shards_failed}")
        if result.cancelled:
            self.logger.warning(f"  Run cancelled:       {result.shards_cancelled} shards stopped or not started")
        self.logger.info(f"  Success rate:        {result.success_rate:.1f}%")
        self.logger.info(f"  Rate:                {result.performance_metrics.get('documents_per_minute', 0):.1f} docs/min")
        self.logger.info(f"  Peak memory:         {result.performance_metrics.get('peak_memory_mb', 0.0):.1f} MB")
        self.logger.info(f"  Output:              {self.output_path}")
        self.logger.info("=" * 60)
        for error in result.errors[:20]:
            self.logger.debug(f"  {error}")
