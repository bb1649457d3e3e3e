"""
Processing module for the flattening system.

Shard discovery plus two interchangeable schedulers: a multiprocessing pool for
production runs and a single-process processor for tests and debugging.
"""

from .parallel_coordinator import ParallelCoordinator, WorkItem
from .sequential_processor import SequentialProcessor
from .shard_discoverer import ShardDiscoverer
from .shard_worker import ShardWorker

__all__ = [
    'ParallelCoordinator',
    'WorkItem',
    'SequentialProcessor',
    'ShardDiscoverer',
    'ShardWorker'
]
