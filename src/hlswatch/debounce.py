"""Quiet-period tracking for paths that are still being written."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .events import ChangeEvent, ChangeKind, PendingTrigger

logger = logging.getLogger(__name__)

# A path must see no write/create events for this long before it is converted.
DEFAULT_QUIET_PERIOD = 120.0

Clock = Callable[[], float]


class DebounceStore:
    """Thread-safe table of paths waiting for their quiet period to elapse.

    Each path is either untracked or pending. Write and create events move a
    path to pending, or restart its quiet period if it is already pending.
    Rename and remove events drop the entry. ``sweep_expired`` removes and
    returns every entry whose quiet period has passed.

    All operations take the same lock, so refresh, purge and sweep never
    interleave for a path. A refresh racing a sweep either lands first and
    keeps the entry pending, or lands after removal and starts a new entry.
    """

    def __init__(self, quiet_period: float = DEFAULT_QUIET_PERIOD, *, clock: Clock = time.monotonic):
        self._quiet_period = quiet_period
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingTrigger] = {}

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    def apply(self, event: ChangeEvent) -> None:
        """Feed one change event through the state machine."""

        if event.kind in (ChangeKind.WRITE, ChangeKind.CREATE):
            self.refresh(event.path)
        elif event.kind in (ChangeKind.RENAME, ChangeKind.REMOVE):
            # A rename is reported for the old name; the new name arrives as a create.
            self.purge(event.path)
        elif event.kind is ChangeKind.CHMOD:
            return
        else:
            logger.debug("Ignoring unrecognized change event: %s", event)

    def refresh(self, path: str) -> PendingTrigger:
        with self._lock:
            trigger = PendingTrigger(path=path, observed_at=self._clock(), quiet_period=self._quiet_period)
            previous = self._pending.get(path)
            self._pending[path] = trigger
        if previous is None:
            logger.debug("Tracking %s", path)
        else:
            logger.debug("Refreshed %s", path)
        return trigger

    def purge(self, path: str) -> bool:
        with self._lock:
            removed = self._pending.pop(path, None)
        if removed is not None:
            logger.debug("Purged %s", path)
        return removed is not None

    def sweep_expired(self) -> List[str]:
        """Remove and return every path whose quiet period has elapsed."""

        with self._lock:
            now = self._clock()
            expired = [path for path, trigger in self._pending.items() if trigger.is_expired(now)]
            for path in expired:
                trigger = self._pending.pop(path)
                logger.info("Expired: %s (last change %.1fs ago)", path, now - trigger.observed_at)
        return expired

    def get(self, path: str) -> Optional[PendingTrigger]:
        with self._lock:
            trigger = self._pending.get(path)
            if trigger is None:
                return None
            return PendingTrigger(trigger.path, trigger.observed_at, trigger.quiet_period)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
