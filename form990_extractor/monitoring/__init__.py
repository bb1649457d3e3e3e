"""Monitoring components: document progress and run-level performance."""

from .performance_monitor import PerformanceMonitor, PerformanceMetrics
from .progress_monitor import ProgressMonitor

__all__ = ['PerformanceMonitor', 'PerformanceMetrics', 'ProgressMonitor']
