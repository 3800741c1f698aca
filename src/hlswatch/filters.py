"""Path eligibility checks."""
from __future__ import annotations

import os
from typing import Iterable, Tuple

DEFAULT_EXTENSIONS: Tuple[str, ...] = (".mp4",)


class PathFilter:
    """Decides whether a path is a media file this service should convert."""

    def __init__(self, extensions: Iterable[str] = DEFAULT_EXTENSIONS):
        self._extensions = frozenset(_normalize_extension(ext) for ext in extensions)

    @property
    def extensions(self) -> Tuple[str, ...]:
        return tuple(sorted(self._extensions))

    def is_concerned(self, path: str) -> bool:
        _, ext = os.path.splitext(os.fspath(path))
        return ext.lower() in self._extensions

    def __call__(self, path: str) -> bool:
        return self.is_concerned(path)


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext
