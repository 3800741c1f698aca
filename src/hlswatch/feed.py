"""Filesystem change feeds and the one-time catch-up scan."""
from __future__ import annotations

import logging
import os
import queue
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import ChangeEvent, ChangeKind
from .filters import PathFilter

logger = logging.getLogger(__name__)


class WatchSetupError(Exception):
    """Raised when a change feed cannot be established on the directory."""


class ChangeFeedError(Exception):
    """Raised when a running change feed breaks or closes unexpectedly."""


class ChangeFeed(ABC):
    """Source of raw change events for one watched directory."""

    @abstractmethod
    def start(self) -> None:
        """Begin watching. Raises :class:`WatchSetupError` on failure."""

    @abstractmethod
    def next_event(self, timeout: float) -> Optional[ChangeEvent]:
        """Return the next event, or ``None`` if nothing arrived within ``timeout``.

        Raises :class:`ChangeFeedError` once the feed can no longer deliver events.
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop watching and release resources."""


_KIND_BY_WATCHDOG_TYPE = {
    "created": ChangeKind.CREATE,
    "modified": ChangeKind.WRITE,
    "closed": ChangeKind.WRITE,
    "deleted": ChangeKind.REMOVE,
}


class _QueueingHandler(FileSystemEventHandler):
    def __init__(self, sink: "queue.Queue[ChangeEvent]"):
        super().__init__()
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        for change in translate_event(event):
            self._sink.put(change)


def translate_event(event: FileSystemEvent) -> List[ChangeEvent]:
    """Map a watchdog event onto one or more :class:`ChangeEvent` values.

    A move is reported as a rename of the old path followed by a create of
    the new one, so a file moved into place starts its own quiet period.
    """

    src_path = os.fsdecode(event.src_path)
    if event.event_type == "moved":
        changes = [ChangeEvent(path=src_path, kind=ChangeKind.RENAME)]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            changes.append(ChangeEvent(path=os.fsdecode(dest_path), kind=ChangeKind.CREATE))
        return changes
    kind = _KIND_BY_WATCHDOG_TYPE.get(event.event_type, ChangeKind.OTHER)
    return [ChangeEvent(path=src_path, kind=kind)]


class WatchdogChangeFeed(ChangeFeed):
    """Change feed backed by a watchdog observer (inotify, FSEvents, ...)."""

    def __init__(self, directory: Path):
        self._directory = Path(directory)
        self._events: "queue.Queue[ChangeEvent]" = queue.Queue()
        self._observer: Optional[Observer] = None
        self._stopped = False

    @property
    def directory(self) -> Path:
        return self._directory

    def start(self) -> None:
        if not self._directory.is_dir():
            raise WatchSetupError(f"Watch directory does not exist: {self._directory}")

        observer = Observer()
        try:
            observer.schedule(_QueueingHandler(self._events), str(self._directory), recursive=False)
            observer.start()
        except OSError as exc:
            raise WatchSetupError(f"Unable to watch {self._directory}: {exc}") from exc
        self._observer = observer
        logger.info("Watching %s", self._directory)

    def next_event(self, timeout: float) -> Optional[ChangeEvent]:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            pass
        self._check_alive()
        return None

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        observer = self._observer
        if observer is None:
            return
        observer.stop()
        observer.join()
        logger.info("Stopped watching %s", self._directory)

    def _check_alive(self) -> None:
        observer = self._observer
        if observer is None:
            raise ChangeFeedError("Change feed was not started")
        if self._stopped:
            raise ChangeFeedError("Change feed is closed")
        if not observer.is_alive():
            raise ChangeFeedError(f"Observer for {self._directory} stopped unexpectedly")
        if not all(emitter.is_alive() for emitter in observer.emitters):
            raise ChangeFeedError(f"Event emitter for {self._directory} stopped unexpectedly")


def scan_directory(directory: Path, path_filter: PathFilter) -> List[str]:
    """List eligible regular files already present in ``directory``.

    The scan is not recursive, matching the watch itself.
    """

    directory = Path(directory)
    try:
        entries = list(os.scandir(directory))
    except OSError as exc:
        raise WatchSetupError(f"Unable to scan {directory}: {exc}") from exc

    results: List[str] = []
    for entry in entries:
        try:
            if not entry.is_file():
                continue
        except OSError:
            continue
        if not path_filter.is_concerned(entry.name):
            continue
        results.append(os.path.abspath(entry.path))
    results.sort()
    logger.info("Initial scan of %s found %s eligible files", directory, len(results))
    return results
