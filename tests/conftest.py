"""Shared fakes for pipeline tests."""
from __future__ import annotations

import queue
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from hlswatch.events import ChangeEvent
from hlswatch.feed import ChangeFeed, ChangeFeedError, WatchSetupError
from hlswatch.transcoder import TranscodeError, Transcoder


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class FakeTranscoder(Transcoder):
    """Writes a playlist and a couple of segments instead of running ffmpeg."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Tuple[Path, Path, Path]] = []
        self._lock = threading.Lock()

    def transcode(self, source: Path, playlist: Path, segment_pattern: Path) -> None:
        with self._lock:
            self.calls.append((source, playlist, segment_pattern))
        for index in range(2):
            segment = segment_pattern.parent / (segment_pattern.name % index)
            segment.write_bytes(b"segment")
        if self.fail:
            raise TranscodeError("ffmpeg failed (exit 1): simulated")
        playlist.write_text("#EXTM3U\n")

    @property
    def sources(self) -> List[str]:
        with self._lock:
            return [str(call[0]) for call in self.calls]


class FakeFeed(ChangeFeed):
    """In-memory change feed driven by the test."""

    def __init__(self, fail_on_start: bool = False):
        self.fail_on_start = fail_on_start
        self.started = False
        self.stopped = False
        self._events: "queue.Queue[object]" = queue.Queue()

    def start(self) -> None:
        if self.fail_on_start:
            raise WatchSetupError("simulated watch failure")
        self.started = True

    def emit(self, event: ChangeEvent) -> None:
        self._events.put(event)

    def break_feed(self, message: str = "watcher.Events closed") -> None:
        self._events.put(ChangeFeedError(message))

    def next_event(self, timeout: float) -> Optional[ChangeEvent]:
        if self.stopped:
            raise ChangeFeedError("Change feed is closed")
        try:
            item = self._events.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, ChangeFeedError):
            raise item
        return item

    def stop(self) -> None:
        self.stopped = True


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def cancel():
    event = threading.Event()
    yield event
    event.set()
