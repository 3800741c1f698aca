"""Event and job models shared across pipeline components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ChangeKind(str, Enum):
    """Kinds of filesystem changes reported by a change feed."""

    WRITE = "write"
    CREATE = "create"
    RENAME = "rename"
    REMOVE = "remove"
    CHMOD = "chmod"
    OTHER = "other"


@dataclass(frozen=True)
class ChangeEvent:
    """A single raw change observed in the watched directory."""

    path: str
    kind: ChangeKind


@dataclass
class PendingTrigger:
    """Debounce bookkeeping for one path waiting out its quiet period."""

    path: str
    observed_at: float
    quiet_period: float

    @property
    def expires_at(self) -> float:
        return self.observed_at + self.quiet_period

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class ConversionJob:
    """A source file handed to the conversion worker."""

    source_path: str
    enqueued_at: float


class ConversionOutcome(str, Enum):
    """How a single conversion job ended."""

    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of one conversion, used for logging and tests."""

    source_path: str
    outcome: ConversionOutcome
    destination: Optional[Path] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not ConversionOutcome.FAILED
