"""Conversion worker that drains the job queue."""
from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .events import ConversionOutcome, ConversionResult
from .jobs import JobQueue
from .transcoder import TranscodeError, Transcoder

logger = logging.getLogger(__name__)

PLAYLIST_NAME = "video.m3u8"
SEGMENT_PATTERN = "video%03d.ts"

# Called as (source, destination_dir) after a successful transcode.
PostProcessor = Callable[[Path, Path], None]


class InvalidJobError(Exception):
    """Raised for jobs that violate producer invariants (e.g. relative paths)."""


class ConversionWorker:
    """Converts one source file at a time into ``destination/<name>/``."""

    def __init__(
        self,
        destination_dir: Path,
        transcoder: Transcoder,
        post_processors: Sequence[PostProcessor] = (),
    ):
        self._destination_dir = Path(destination_dir)
        self._transcoder = transcoder
        self._post_processors: List[PostProcessor] = list(post_processors)

    @property
    def destination_dir(self) -> Path:
        return self._destination_dir

    def destination_for(self, source: str) -> Path:
        stem, _ = os.path.splitext(os.path.basename(source))
        return self._destination_dir / stem

    def convert(self, source: str) -> ConversionResult:
        """Convert ``source`` unless its playlist already exists.

        Raises :class:`InvalidJobError` for non-absolute paths. Every other
        failure is reported in the returned result after the destination
        directory has been removed.
        """

        logger.info("Target: %s", source)
        if not os.path.isabs(source):
            raise InvalidJobError(f"path is not absolute path: {source}")

        destination = self.destination_for(source)
        playlist = destination / PLAYLIST_NAME
        if playlist.exists():
            logger.info("SKIP exists: %s", playlist)
            return ConversionResult(source, ConversionOutcome.SKIPPED, destination)

        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot make dir %s: %s", destination, exc)
            return ConversionResult(source, ConversionOutcome.FAILED, destination, exc)

        source_path = Path(source)
        try:
            self._transcoder.transcode(source_path, playlist, destination / SEGMENT_PATTERN)
        except TranscodeError as exc:
            logger.error("Conversion failed for %s: %s", source, exc)
            _rollback(destination)
            return ConversionResult(source, ConversionOutcome.FAILED, destination, exc)
        logger.info("Conversion complete %s to %s", source, playlist)

        for step in self._post_processors:
            try:
                step(source_path, destination)
            except Exception as exc:
                logger.error("Post-processing %s failed for %s: %s", _step_name(step), source, exc)
                _rollback(destination)
                return ConversionResult(source, ConversionOutcome.FAILED, destination, exc)

        return ConversionResult(source, ConversionOutcome.SUCCEEDED, destination)

    def run(self, jobs: JobQueue, cancel: threading.Event) -> None:
        """Process queued jobs until ``cancel`` is set."""

        while not cancel.is_set():
            job = jobs.get(cancel)
            if job is None:
                continue
            try:
                self.convert(job.source_path)
            except InvalidJobError as exc:
                logger.error("Dropping job: %s", exc)
            except Exception:  # pragma: no cover - protective logging
                logger.exception("Unexpected failure converting %s", job.source_path)


class WorkerPool:
    """Runs ``size`` threads that share one worker and one queue."""

    def __init__(self, worker: ConversionWorker, jobs: JobQueue, size: int = 1):
        if size < 1:
            raise ValueError("size must be at least 1")
        self._worker = worker
        self._jobs = jobs
        self._size = size
        self._threads: List[threading.Thread] = []

    def start(self, cancel: threading.Event) -> None:
        for index in range(self._size):
            thread = threading.Thread(
                target=self._worker.run,
                args=(self._jobs, cancel),
                name=f"hlswatch-worker-{index}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Started %s conversion worker(s)", self._size)

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)


def _rollback(destination: Path) -> None:
    logger.info("Removing incomplete output %s", destination)
    shutil.rmtree(destination, ignore_errors=True)


def _step_name(step: PostProcessor) -> str:
    return getattr(step, "name", None) or getattr(step, "__name__", None) or type(step).__name__
