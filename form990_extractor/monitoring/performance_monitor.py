"""
Run-level performance monitoring for the flattening pipeline.

Tracks how long each pipeline stage takes (discovery, processing) and samples
the parent process' resident memory and CPU usage with psutil while a run is
active. Worker processes are not sampled; their throughput comes back through
shard results.
"""

import logging
import threading
import time

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import psutil

from ..interfaces import PerformanceMonitorInterface


@dataclass
class PerformanceMetrics:
    """Measurements collected during one run."""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stage_timings: Dict[str, float] = field(default_factory=dict)
    peak_rss_mb: float = 0.0
    cpu_samples: List[float] = field(default_factory=list)
    sample_count: int = 0
    custom_metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        return ((self.finished_at or datetime.now()) - self.started_at).total_seconds()

    @property
    def avg_cpu_percent(self) -> float:
        return sum(self.cpu_samples) / len(self.cpu_samples) if self.cpu_samples else 0.0


class PerformanceMonitor(PerformanceMonitorInterface):
    """
    Stage timer plus background resource sampler.

    Usage:
        monitor = PerformanceMonitor()
        monitor.start_monitoring()
        with monitor.stage('discovery'):
            shards = discoverer.discover()
        summary = monitor.stop_monitoring()

    A stage entered more than once accumulates its durations.
    """

    def __init__(self, sample_interval: float = 0.5):
        """
        Initialize the monitor.

        Args:
            sample_interval: Seconds between psutil samples
        """
        self.logger = logging.getLogger(__name__)
        self.sample_interval = sample_interval
        self.metrics = PerformanceMetrics()

        self._open_stages: Dict[str, float] = {}
        self._sampler: Optional[threading.Thread] = None
        self._stop_sampling = threading.Event()

    @property
    def is_monitoring(self) -> bool:
        return self._sampler is not None

    def start_monitoring(self) -> None:
        """Reset the metrics and start the resource sampler."""
        if self.is_monitoring:
            self.logger.warning("Performance monitoring already started")
            return

        self.metrics = PerformanceMetrics(started_at=datetime.now())
        self._open_stages.clear()
        self._stop_sampling.clear()
        self._sampler = threading.Thread(target=self._sample_until_stopped, name="resource-sampler", daemon=True)
        self._sampler.start()
        self.logger.debug(f"Resource sampling every {self.sample_interval}s")

    def stop_monitoring(self) -> Dict[str, Any]:
        """
        Stop the sampler and summarize the run.

        Returns:
            Summary dictionary (empty if monitoring was never started)
        """
        if not self.is_monitoring:
            self.logger.warning("Performance monitoring not started")
            return {}

        self._stop_sampling.set()
        self._sampler.join(timeout=2.0)
        self._sampler = None
        self.metrics.finished_at = datetime.now()

        # One last sample so short runs still report memory
        self._take_sample(psutil.Process())

        summary = self.get_summary()
        self.logger.debug(f"Performance monitoring stopped after {summary['total_time_seconds']:.2f}s")
        return summary

    def start_stage(self, stage_name: str) -> None:
        self._open_stages[stage_name] = time.perf_counter()

    def end_stage(self, stage_name: str) -> float:
        """End a stage and return its duration in seconds (0.0 if it was never started)."""
        started = self._open_stages.pop(stage_name, None)
        if started is None:
            return 0.0
        duration = time.perf_counter() - started
        self.metrics.stage_timings[stage_name] = self.metrics.stage_timings.get(stage_name, 0.0) + duration
        return duration

    @contextmanager
    def stage(self, stage_name: str) -> Iterator[None]:
        """Time the enclosed block as a stage, also when it raises."""
        self.start_stage(stage_name)
        try:
            yield
        finally:
            self.end_stage(stage_name)

    def record_metric(self, metric_name: str, value: Any) -> None:
        self.metrics.custom_metrics[metric_name] = value

    def _sample_until_stopped(self) -> None:
        process = psutil.Process()
        # First cpu_percent call only primes the counter
        process.cpu_percent(interval=None)
        while not self._stop_sampling.is_set():
            if not self._take_sample(process):
                break
            self._stop_sampling.wait(self.sample_interval)

    def _take_sample(self, process: psutil.Process) -> bool:
        try:
            rss_mb = process.memory_info().rss / (1024 * 1024)
            cpu = process.cpu_percent(interval=None)
        except psutil.Error as e:
            self.logger.warning(f"Resource sampling failed: {e}")
            return False

        self.metrics.peak_rss_mb = max(self.metrics.peak_rss_mb, rss_mb)
        self.metrics.cpu_samples.append(cpu)
        self.metrics.sample_count += 1
        return True

    def get_summary(self) -> Dict[str, Any]:
        total_time = self.metrics.elapsed_seconds
        return {
            'total_time_seconds': total_time,
            'stage_timings': dict(self.metrics.stage_timings),
            'stage_percent': {
                stage: (duration / total_time * 100) if total_time > 0 else 0.0
                for stage, duration in self.metrics.stage_timings.items()
            },
            'resource_usage': {
                'peak_memory_mb': self.metrics.peak_rss_mb,
                'avg_cpu_percent': self.metrics.avg_cpu_percent,
                'samples': self.metrics.sample_count,
            },
            'custom_metrics': dict(self.metrics.custom_metrics),
        }
