"""Wires the change feed, debounce store, sweeper and workers together."""
from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import AppConfig
from .debounce import DEFAULT_QUIET_PERIOD, Clock, DebounceStore
from .events import ChangeEvent
from .feed import ChangeFeed, ChangeFeedError, WatchdogChangeFeed, scan_directory
from .filters import PathFilter
from .jobs import JobQueue
from .pages import IndexStep, PlayerPageStep, ThumbnailStep
from .server import serve_directory
from .sweeper import ExpirySweeper
from .transcoder import FFmpegThumbnailer, FFmpegTranscoder, Transcoder
from .worker import ConversionWorker, PostProcessor, WorkerPool

logger = logging.getLogger(__name__)

# How often the feed pump and ``wait`` wake up to check for cancellation.
POLL_INTERVAL = 0.5


class FatalError(Exception):
    """A condition that ends the process (broken change feed)."""


@dataclass
class OrchestratorStats:
    """Counters for observability."""

    events_seen: int = 0
    events_ignored: int = 0
    initial_jobs: int = 0


class Orchestrator:
    """Owns the cancellation token and every long-running task.

    ``start`` raises on startup failures (capacity exceeded, watch setup).
    ``wait`` re-raises change-feed failures as :class:`FatalError`.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        feed: Optional[ChangeFeed] = None,
        transcoder: Optional[Transcoder] = None,
        post_processors: Optional[Sequence[PostProcessor]] = None,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
        clock: Clock = time.monotonic,
    ):
        watch = config.watch
        self._config = config
        self.path_filter = PathFilter(watch.extensions)
        self.store = DebounceStore(quiet_period, clock=clock)
        self.jobs = JobQueue(watch.queue_capacity)
        self.sweeper = ExpirySweeper(self.store, self.jobs, self.path_filter, watch.sweep_interval)
        if transcoder is None:
            transcoder = FFmpegTranscoder(config.transcoder.binary, config.transcoder.segment_seconds)
        if post_processors is None:
            post_processors = _default_post_processors(config)
        self.worker = ConversionWorker(watch.destination_dir, transcoder, post_processors)
        self._pool = WorkerPool(self.worker, self.jobs, watch.workers)
        self._feed = feed if feed is not None else WatchdogChangeFeed(watch.source_dir)

        self._cancel = threading.Event()
        self._errors: "queue.Queue[BaseException]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self._httpd = None
        self._stopped = False
        self.stats = OrchestratorStats()

    @property
    def cancelled(self) -> threading.Event:
        return self._cancel

    def run(self) -> None:
        self.start()
        try:
            self.wait()
        finally:
            self.stop()

    def start(self) -> None:
        watch = self._config.watch
        logger.info("Starting: %s -> %s", watch.source_dir, watch.destination_dir)
        try:
            watch.destination_dir.mkdir(parents=True, exist_ok=True)
            self._pool.start(self._cancel)

            paths = scan_directory(watch.source_dir, self.path_filter)
            self.stats.initial_jobs = self.jobs.put_all_or_fail(paths)

            self._feed.start()
            self._spawn(self._pump_events, "hlswatch-feed")
            self._spawn(self.sweeper.run, "hlswatch-sweeper", self._cancel)

            if self._config.serve.enabled:
                serve = self._config.serve
                self._httpd = serve_directory(watch.destination_dir, serve.host, serve.port)
        except BaseException:
            self.stop()
            raise

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until cancelled, a fatal error arrives, or ``timeout`` passes."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._cancel.is_set():
            wait = POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return
                wait = min(wait, remaining)
            try:
                exc = self._errors.get(timeout=wait)
            except queue.Empty:
                continue
            self._cancel.set()
            raise FatalError(str(exc)) from exc

    def cancel(self) -> None:
        self._cancel.set()

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._cancel.set()
        self._feed.stop()
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
        for thread in self._threads:
            thread.join()
        # Bounded by the longest in-flight transcode.
        self._pool.join()
        logger.info(
            "Stopped after %s events (%s ignored); %s path(s) still pending",
            self.stats.events_seen,
            self.stats.events_ignored,
            len(self.store),
        )

    def handle_event(self, event: ChangeEvent) -> None:
        if self.path_filter.is_concerned(event.path):
            self.store.apply(event)
        else:
            self.stats.events_ignored += 1
        self.stats.events_seen += 1

    def _pump_events(self) -> None:
        while not self._cancel.is_set():
            try:
                event = self._feed.next_event(POLL_INTERVAL)
            except ChangeFeedError as exc:
                if not self._cancel.is_set():
                    logger.error("Change feed failed: %s", exc)
                    self._errors.put(exc)
                return
            if event is not None:
                self.handle_event(event)

    def _spawn(self, target, name: str, *args) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)


def _default_post_processors(config: AppConfig) -> List[PostProcessor]:
    steps: List[PostProcessor] = []
    if config.transcoder.thumbnails:
        steps.append(ThumbnailStep(FFmpegThumbnailer(config.transcoder.binary)))
    if config.transcoder.pages:
        steps.append(PlayerPageStep())
        steps.append(IndexStep(config.watch.destination_dir))
    return steps
