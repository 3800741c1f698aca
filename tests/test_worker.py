"""
Tests for the conversion worker.

These tests verify:
1. Existing playlists make repeat jobs a no-op
2. Failed transcodes and post-processing steps roll back the output directory
3. Per-job failures never stop the worker loop
"""

import os
import sys
import threading
from pathlib import Path

import pytest

from hlswatch.events import ConversionOutcome
from hlswatch.jobs import JobQueue
from hlswatch.pages import IndexStep, PlayerPageStep
from hlswatch.transcoder import TranscodeError
from hlswatch.worker import (
    PLAYLIST_NAME,
    ConversionWorker,
    InvalidJobError,
    WorkerPool,
)

from conftest import FakeTranscoder, wait_for


@pytest.fixture
def source(tmp_path: Path) -> Path:
    src_dir = tmp_path / "src"
    src_dir.mkdir()
    path = src_dir / "holiday.mp4"
    path.write_bytes(b"not really a video")
    return path


@pytest.fixture
def dst(tmp_path: Path) -> Path:
    return tmp_path / "dst"


class TestConvert:

    def test_destination_is_named_after_source_stem(self, dst, transcoder):
        worker = ConversionWorker(dst, transcoder)

        assert worker.destination_for("/src/holiday.MP4") == dst / "holiday"
        assert worker.destination_for("/src/my.clip.mp4") == dst / "my.clip"

    def test_success_writes_playlist(self, source, dst, transcoder):
        worker = ConversionWorker(dst, transcoder)

        result = worker.convert(str(source))

        assert result.outcome is ConversionOutcome.SUCCEEDED
        assert (dst / "holiday" / PLAYLIST_NAME).is_file()
        assert (dst / "holiday" / "video000.ts").is_file()
        src_arg, playlist_arg, pattern_arg = transcoder.calls[0]
        assert src_arg == source
        assert playlist_arg == dst / "holiday" / "video.m3u8"
        assert pattern_arg == dst / "holiday" / "video%03d.ts"

    def test_existing_playlist_is_skipped_every_time(self, source, dst, transcoder):
        out_dir = dst / "holiday"
        out_dir.mkdir(parents=True)
        (out_dir / PLAYLIST_NAME).write_text("#EXTM3U\n")
        before = sorted(p.name for p in out_dir.iterdir())
        worker = ConversionWorker(dst, transcoder)

        first = worker.convert(str(source))
        second = worker.convert(str(source))

        assert first.outcome is ConversionOutcome.SKIPPED
        assert second.outcome is ConversionOutcome.SKIPPED
        assert transcoder.calls == []
        assert sorted(p.name for p in out_dir.iterdir()) == before

    def test_relative_path_is_rejected(self, dst, transcoder):
        worker = ConversionWorker(dst, transcoder)

        with pytest.raises(InvalidJobError):
            worker.convert("relative/holiday.mp4")
        assert transcoder.calls == []
        assert not dst.exists()

    def test_failed_transcode_removes_destination(self, source, dst):
        worker = ConversionWorker(dst, FakeTranscoder(fail=True))

        result = worker.convert(str(source))

        assert result.outcome is ConversionOutcome.FAILED
        assert isinstance(result.error, TranscodeError)
        assert not result.ok
        assert not (dst / "holiday").exists()

    def test_failed_post_processing_removes_destination(self, source, dst, transcoder):
        def broken_step(src, destination):
            (destination / "thumb.jpg").write_bytes(b"partial")
            raise TranscodeError("thumbnail failed")

        after = []
        worker = ConversionWorker(dst, transcoder, [broken_step, lambda s, d: after.append(d)])

        result = worker.convert(str(source))

        assert result.outcome is ConversionOutcome.FAILED
        assert not (dst / "holiday").exists()
        assert after == []

    def test_post_processors_run_in_order(self, source, dst, transcoder):
        seen = []
        worker = ConversionWorker(
            dst,
            transcoder,
            [lambda s, d: seen.append(("first", s, d)), lambda s, d: seen.append(("second", s, d))],
        )

        worker.convert(str(source))

        assert seen == [("first", source, dst / "holiday"), ("second", source, dst / "holiday")]

    def test_unexpected_step_error_still_rolls_back(self, source, dst, transcoder):
        def broken_step(src, destination):
            raise ValueError("bad template value")

        worker = ConversionWorker(dst, transcoder, [broken_step])

        result = worker.convert(str(source))

        assert result.outcome is ConversionOutcome.FAILED
        assert isinstance(result.error, ValueError)
        assert not (dst / "holiday").exists()

    @pytest.mark.skipif(sys.platform != "linux", reason="needs byte-oriented filenames")
    def test_undecodable_filename_gets_pages(self, tmp_path, dst, transcoder):
        source = os.fsdecode(os.fsencode(tmp_path) + b"/\xff.mp4")

        def write_thumbnail(src, destination):
            (destination / "thumb.jpg").write_bytes(b"jpg")

        worker = ConversionWorker(dst, transcoder, [write_thumbnail, PlayerPageStep(), IndexStep(dst)])

        result = worker.convert(source)
        repeat = worker.convert(str(tmp_path / "good.mp4"))

        assert result.outcome is ConversionOutcome.SUCCEEDED
        assert repeat.outcome is ConversionOutcome.SUCCEEDED
        out_dir = os.path.join(os.fsencode(dst), b"\xff")
        assert os.path.isfile(os.path.join(out_dir, b"index.html"))
        root_index = (dst / "index.html").read_bytes()
        assert b'href="./%FF/"' in root_index
        assert b'href="./good/"' in root_index


class TestRun:

    def test_loop_survives_failures(self, tmp_path, dst):
        class FlakyTranscoder(FakeTranscoder):
            def transcode(self, source, playlist, segment_pattern):
                self.fail = source.name == "bad.mp4"
                super().transcode(source, playlist, segment_pattern)

        transcoder = FlakyTranscoder()
        worker = ConversionWorker(dst, transcoder)
        jobs = JobQueue(10, poll_interval=0.01)
        cancel = threading.Event()
        for path in ("relative.mp4", str(tmp_path / "bad.mp4"), str(tmp_path / "good.mp4")):
            jobs.put(path, cancel)

        thread = threading.Thread(target=worker.run, args=(jobs, cancel))
        thread.start()
        try:
            assert wait_for(lambda: (dst / "good" / PLAYLIST_NAME).exists())
        finally:
            cancel.set()
            thread.join(2)

        assert not thread.is_alive()
        assert not (dst / "bad").exists()
        assert transcoder.sources == [str(tmp_path / "bad.mp4"), str(tmp_path / "good.mp4")]

    def test_pool_runs_multiple_consumers(self, tmp_path, dst, transcoder):
        worker = ConversionWorker(dst, transcoder)
        jobs = JobQueue(10, poll_interval=0.01)
        cancel = threading.Event()
        names = [f"clip{i}" for i in range(6)]
        for name in names:
            jobs.put(str(tmp_path / f"{name}.mp4"), cancel)

        pool = WorkerPool(worker, jobs, size=3)
        pool.start(cancel)
        try:
            assert wait_for(lambda: all((dst / n / PLAYLIST_NAME).exists() for n in names))
        finally:
            cancel.set()
            pool.join(2)

        assert sorted(transcoder.sources) == sorted(str(tmp_path / f"{n}.mp4") for n in names)

    def test_pool_size_must_be_positive(self, dst, transcoder):
        with pytest.raises(ValueError):
            WorkerPool(ConversionWorker(dst, transcoder), JobQueue(1), size=0)
