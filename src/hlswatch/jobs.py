"""Bounded hand-off between job producers and conversion workers."""
from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Optional, Sequence

from .events import ConversionJob

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100

# How often blocked producers and consumers wake up to check for cancellation.
POLL_INTERVAL = 0.5


class CapacityExceededError(Exception):
    """Raised when a batch of jobs does not fit in the queue."""


class JobQueue:
    """Bounded FIFO queue of :class:`ConversionJob` values."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, *, poll_interval: float = POLL_INTERVAL):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._poll_interval = poll_interval
        self._queue: "queue.Queue[ConversionJob]" = queue.Queue(maxsize=capacity)
        self._batch_lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._queue.qsize()

    def put(self, path: str, cancel: threading.Event) -> bool:
        """Enqueue ``path``, blocking while the queue is full.

        Returns ``False`` if ``cancel`` was set before the job was accepted.
        """

        job = ConversionJob(source_path=path, enqueued_at=time.time())
        while not cancel.is_set():
            try:
                self._queue.put(job, timeout=self._poll_interval)
            except queue.Full:
                logger.debug("Job queue full; waiting to enqueue %s", path)
                continue
            logger.debug("Enqueued %s", path)
            return True
        return False

    def put_all_or_fail(self, paths: Sequence[str]) -> int:
        """Enqueue every path or none of them.

        Raises :class:`CapacityExceededError` when the batch is larger than the
        space currently free in the queue.
        """

        with self._batch_lock:
            free = self._capacity - self._queue.qsize()
            if len(paths) > free:
                raise CapacityExceededError(
                    f"the number of files is greater than the queue can hold. "
                    f"capacity: {free}, got: {len(paths)}"
                )
            now = time.time()
            for path in paths:
                self._queue.put_nowait(ConversionJob(source_path=path, enqueued_at=now))
        return len(paths)

    def get(self, cancel: threading.Event, timeout: Optional[float] = None) -> Optional[ConversionJob]:
        """Return the next job, or ``None`` on cancellation or timeout."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while not cancel.is_set():
            wait = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait = min(wait, remaining)
            try:
                return self._queue.get(timeout=wait)
            except queue.Empty:
                continue
        return None
