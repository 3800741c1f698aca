"""Thumbnail and HTML artifacts generated after a successful conversion."""
from __future__ import annotations

import html
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import List
from urllib.parse import quote

from .transcoder import FFmpegThumbnailer

logger = logging.getLogger(__name__)

THUMBNAIL_NAME = "thumb.jpg"
PAGE_NAME = "index.html"

_PLAYER_TEMPLATE = Template(
    """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>$title</title>
  <script src="https://cdn.jsdelivr.net/npm/hls.js@1"></script>
</head>
<body>
  <h1>$title</h1>
  <video id="video" controls poster="$thumbnail" width="960"></video>
  <script>
    var video = document.getElementById("video");
    var src = "$src";
    if (video.canPlayType("application/vnd.apple.mpegurl")) {
      video.src = src;
    } else if (Hls.isSupported()) {
      var hls = new Hls();
      hls.loadSource(src);
      hls.attachMedia(video);
    }
  </script>
  <p><a href="../">Back</a></p>
</body>
</html>
"""
)

_INDEX_TEMPLATE = Template(
    """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Videos</title>
</head>
<body>
  <h1>Videos</h1>
  <ul>
$items
  </ul>
</body>
</html>
"""
)

_INDEX_ITEM_TEMPLATE = Template(
    '    <li><a href="$path"><img src="$thumbnail" alt="$title"><br>$title</a></li>'
)


@dataclass(frozen=True)
class IndexEntry:
    title: str
    thumbnail: str
    path: str


class ThumbnailStep:
    """Writes ``thumb.jpg`` next to the playlist."""

    name = "thumbnail"

    def __init__(self, thumbnailer: FFmpegThumbnailer):
        self._thumbnailer = thumbnailer

    def __call__(self, source: Path, destination: Path) -> None:
        self._thumbnailer.capture(source, destination / THUMBNAIL_NAME)


class PlayerPageStep:
    """Writes a single-video player page into the destination directory."""

    name = "player page"

    def __call__(self, source: Path, destination: Path) -> None:
        render_player_page(destination)


class IndexStep:
    """Regenerates the top-level index after each conversion."""

    name = "index"

    def __init__(self, root: Path):
        self._root = Path(root)
        self._lock = threading.Lock()

    def __call__(self, source: Path, destination: Path) -> None:
        with self._lock:
            generate_index(self._root)


def render_player_page(destination: Path, playlist_name: str = "video.m3u8") -> Path:
    title = html.escape(destination.name)
    content = _PLAYER_TEMPLATE.substitute(
        title=title,
        thumbnail=THUMBNAIL_NAME,
        src=html.escape(_url_quote(playlist_name)),
    )
    target = destination / PAGE_NAME
    _write_atomic(target, content)
    return target


def collect_index_entries(root: Path) -> List[IndexEntry]:
    """Return one entry per child directory that has a thumbnail.

    Directories without ``thumb.jpg`` are skipped.
    """

    entries: List[IndexEntry] = []
    for child in sorted(Path(root).iterdir()):
        if not child.is_dir():
            continue
        if not (child / THUMBNAIL_NAME).is_file():
            logger.debug("No thumbnail in %s; leaving it out of the index", child)
            continue
        url_name = _url_quote(child.name)
        entries.append(
            IndexEntry(
                title=child.name,
                thumbnail=f"./{url_name}/{THUMBNAIL_NAME}",
                path=f"./{url_name}/",
            )
        )
        logger.debug("Add page to index: %s", child.name)
    return entries


def generate_index(root: Path) -> Path:
    entries = collect_index_entries(root)
    items = "\n".join(
        _INDEX_ITEM_TEMPLATE.substitute(
            path=html.escape(entry.path),
            thumbnail=html.escape(entry.thumbnail),
            title=html.escape(entry.title),
        )
        for entry in entries
    )
    target = Path(root) / PAGE_NAME
    _write_atomic(target, _INDEX_TEMPLATE.substitute(items=items))
    logger.info("Index for %s lists %s video(s)", root, len(entries))
    return target


def _write_atomic(target: Path, content: str) -> None:
    tmp = target.with_name(target.name + ".tmp")
    # Undecodable filenames survive as lone surrogates; write their original bytes back.
    tmp.write_bytes(content.encode("utf-8", errors="surrogateescape"))
    os.replace(tmp, target)


def _url_quote(name: str) -> str:
    return quote(name, errors="surrogateescape")
