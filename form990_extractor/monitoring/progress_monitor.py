"""
Process-wide progress counter for completed documents.
"""

import logging
import multiprocessing as mp


class ProgressMonitor:
    """
    Atomic document counter shared by every worker.

    The counter is a multiprocessing.Value, so the same monitor works for
    threads in one process and for pool workers that inherit it through the
    pool initializer. Increments happen under the value's lock; a log line is
    emitted every `interval` completions. The monitor only observes: nothing
    waits on it.
    """

    def __init__(self, interval: int = 1000, counter=None):
        """
        Initialize the monitor.

        Args:
            interval: Completions between progress log lines
            counter: Optional existing shared integer value (created if omitted)
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._counter = counter if counter is not None else mp.Value('q', 0)
        self.logger = logging.getLogger(__name__)

    def increment(self) -> int:
        """
        Count one completed document.

        Returns:
            The counter value after this increment
        """
        with self._counter.get_lock():
            self._counter.value += 1
            value = self._counter.value

        if value % self.interval == 0:
            self.logger.info(f"Processed {value} documents")
        return value

    @property
    def count(self) -> int:
        return self._counter.value

    def reset(self) -> None:
        with self._counter.get_lock():
            self._counter.value = 0
