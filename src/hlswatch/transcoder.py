"""ffmpeg invocations used by the conversion worker."""
from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "ffmpeg"
DEFAULT_SEGMENT_SECONDS = 6
DEFAULT_THUMBNAIL_OFFSET = 5.0

# Keep the tail of stderr in error messages; ffmpeg is verbose.
_STDERR_TAIL = 2000


class TranscodeError(Exception):
    """Raised when an external ffmpeg invocation fails."""


class Transcoder(ABC):
    """Converts one source file into an HLS playlist plus segments."""

    @abstractmethod
    def transcode(self, source: Path, playlist: Path, segment_pattern: Path) -> None:
        """Run the conversion. Raises :class:`TranscodeError` on failure."""


class FFmpegTranscoder(Transcoder):
    """Stream-copies audio and video into VOD HLS with ffmpeg."""

    def __init__(self, binary: str = DEFAULT_BINARY, segment_seconds: int = DEFAULT_SEGMENT_SECONDS):
        self.binary = binary
        self.segment_seconds = segment_seconds

    def build_command(self, source: Path, playlist: Path, segment_pattern: Path) -> List[str]:
        return [
            self.binary,
            "-nostdin",
            "-y",
            "-i", str(source),
            "-c:v", "copy",
            "-c:a", "copy",
            "-f", "hls",
            "-hls_time", str(self.segment_seconds),
            "-hls_list_size", "0",
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", str(segment_pattern),
            str(playlist),
        ]

    def transcode(self, source: Path, playlist: Path, segment_pattern: Path) -> None:
        command = self.build_command(source, playlist, segment_pattern)
        logger.info("Conversion start %s to %s", source, playlist)
        _run(command)


class FFmpegThumbnailer:
    """Grabs a single frame from a video as a JPEG thumbnail."""

    def __init__(self, binary: str = DEFAULT_BINARY, offset: float = DEFAULT_THUMBNAIL_OFFSET, width: int = 480):
        self.binary = binary
        self.offset = offset
        self.width = width

    def build_command(self, source: Path, target: Path) -> List[str]:
        return [
            self.binary,
            "-nostdin",
            "-y",
            "-ss", str(self.offset),
            "-i", str(source),
            "-frames:v", "1",
            "-vf", f"scale={self.width}:-2",
            str(target),
        ]

    def capture(self, source: Path, target: Path) -> None:
        logger.info("Capturing thumbnail for %s", source)
        _run(self.build_command(source, target))


def _run(command: Sequence[str]) -> None:
    logger.debug("Executing: %s", " ".join(command))
    try:
        subprocess.run(
            list(command),
            check=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="replace")[-_STDERR_TAIL:]
        raise TranscodeError(f"{command[0]} failed (exit {exc.returncode}): {stderr.strip()}") from exc
    except OSError as exc:
        raise TranscodeError(f"Unable to execute {command[0]}: {exc}") from exc
