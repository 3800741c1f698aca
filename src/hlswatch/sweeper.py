"""Periodic hand-off of settled paths from the debounce store to the job queue."""
from __future__ import annotations

import logging
import threading
from typing import List

from .debounce import DebounceStore
from .filters import PathFilter
from .jobs import JobQueue

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 10.0


class ExpirySweeper:
    """Moves expired debounce entries onto the job queue on a fixed tick."""

    def __init__(
        self,
        store: DebounceStore,
        jobs: JobQueue,
        path_filter: PathFilter,
        interval: float = DEFAULT_SWEEP_INTERVAL,
    ):
        self._store = store
        self._jobs = jobs
        self._filter = path_filter
        self._interval = interval

    @property
    def interval(self) -> float:
        return self._interval

    def run(self, cancel: threading.Event) -> None:
        """Sweep every ``interval`` seconds until ``cancel`` is set."""

        logger.info("Sweeper started (interval=%ss)", self._interval)
        while not cancel.wait(self._interval):
            self.sweep_once(cancel)
        logger.info("Sweeper stopped")

    def sweep_once(self, cancel: threading.Event) -> List[str]:
        enqueued: List[str] = []
        for path in self._store.sweep_expired():
            if not self._filter.is_concerned(path):
                logger.debug("Dropping expired path that is no longer eligible: %s", path)
                continue
            # Blocks while the queue is full.
            if not self._jobs.put(path, cancel):
                logger.info("Sweep cancelled before %s could be queued", path)
                break
            enqueued.append(path)
        if enqueued:
            logger.info("Queued %s settled file(s); %s still pending", len(enqueued), len(self._store))
        return enqueued
