"""
Unit tests for the FFprobe inspector and FFmpeg fast-start remuxer.

subprocess.run is replaced with fakes, so no FFmpeg install is needed.
Files live in pytest's tmp_path.
"""

import asyncio
import json
import subprocess

import pytest

from src.core.videos.errors import (
    InvalidInputError,
    NoVideoStreamError,
    OutputEmptyError,
    OutputMissingError,
    ProbeFailedError,
    ProbeOutputInvalidError,
    RemuxFailedError,
)
from src.core.videos.models import StreamGeometry
from src.infrastructure.media import ffmpeg
from src.infrastructure.media.ffmpeg import (
    FFmpegFastStartRemuxer,
    FFprobeMediaInspector,
    MockFastStartRemuxer,
    parse_stream_geometry,
    processed_path_for,
)


def completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


def probe_json(*streams):
    return json.dumps({"streams": list(streams)})


class RecordingRun:
    """Stand-in for subprocess.run that records calls and runs a callback."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        return self.handler(cmd)


# ---------------------------------------------------------------------------
# Probe output parsing
# ---------------------------------------------------------------------------

class TestParseStreamGeometry:
    def test_picks_first_video_stream(self):
        output = probe_json(
            {"codec_type": "audio"},
            {"codec_type": "video", "width": 1280, "height": 720},
            {"codec_type": "video", "width": 640, "height": 360},
        )
        assert parse_stream_geometry(output) == StreamGeometry(1280, 720)

    def test_skips_video_streams_without_dimensions(self):
        output = probe_json(
            {"codec_type": "video", "width": 0, "height": 0},
            {"codec_type": "video"},
            {"codec_type": "video", "width": 1080, "height": 1920},
        )
        assert parse_stream_geometry(output) == StreamGeometry(1080, 1920)

    def test_no_video_stream(self):
        with pytest.raises(NoVideoStreamError):
            parse_stream_geometry(probe_json({"codec_type": "audio"}))

    def test_empty_stream_list(self):
        with pytest.raises(NoVideoStreamError):
            parse_stream_geometry("{}")

    @pytest.mark.parametrize("output", ["not json", "", "[1, 2]", '{"streams": "nope"}'])
    def test_invalid_output(self, output):
        with pytest.raises(ProbeOutputInvalidError):
            parse_stream_geometry(output)


# ---------------------------------------------------------------------------
# Inspector
# ---------------------------------------------------------------------------

class TestFFprobeMediaInspector:
    def test_runs_ffprobe_and_returns_geometry(self, monkeypatch):
        fake = RecordingRun(lambda cmd: completed(
            cmd, stdout=probe_json({"codec_type": "video", "width": 1280, "height": 720})
        ))
        monkeypatch.setattr(ffmpeg.subprocess, "run", fake)

        inspector = FFprobeMediaInspector(ffprobe_path="/opt/ffprobe", timeout_seconds=7)
        geometry = asyncio.run(inspector.inspect("/tmp/upload.mp4"))

        assert geometry == StreamGeometry(1280, 720)
        cmd, kwargs = fake.calls[0]
        assert cmd == [
            "/opt/ffprobe", "-v", "error", "-print_format", "json", "-show_streams",
            "/tmp/upload.mp4",
        ]
        assert kwargs["timeout"] == 7

    def test_nonzero_exit_carries_stderr(self, monkeypatch):
        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(
            lambda cmd: completed(cmd, returncode=1, stderr="moov atom not found")
        ))

        with pytest.raises(ProbeFailedError) as exc_info:
            asyncio.run(FFprobeMediaInspector().inspect("/tmp/broken.mp4"))

        assert "moov atom not found" in exc_info.value.diagnostics

    def test_timeout_is_a_probe_failure(self, monkeypatch):
        def hang(cmd):
            raise subprocess.TimeoutExpired(cmd, 30, stderr=b"still reading")

        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(hang))

        with pytest.raises(ProbeFailedError, match="timed out") as exc_info:
            asyncio.run(FFprobeMediaInspector().inspect("/tmp/slow.mp4"))

        assert exc_info.value.diagnostics == "still reading"

    def test_missing_binary_is_a_probe_failure(self, monkeypatch):
        def missing(cmd):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(missing))

        with pytest.raises(ProbeFailedError, match="could not be started"):
            asyncio.run(FFprobeMediaInspector().inspect("/tmp/a.mp4"))

    def test_garbage_output(self, monkeypatch):
        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(
            lambda cmd: completed(cmd, stdout="garbage")
        ))

        with pytest.raises(ProbeOutputInvalidError):
            asyncio.run(FFprobeMediaInspector().inspect("/tmp/a.mp4"))

    def test_empty_path_rejected_without_running_tool(self, monkeypatch):
        fake = RecordingRun(lambda cmd: completed(cmd))
        monkeypatch.setattr(ffmpeg.subprocess, "run", fake)

        with pytest.raises(InvalidInputError):
            asyncio.run(FFprobeMediaInspector().inspect(""))

        assert fake.calls == []


# ---------------------------------------------------------------------------
# Remuxer
# ---------------------------------------------------------------------------

class TestFFmpegFastStartRemuxer:
    def _source(self, tmp_path):
        source = tmp_path / "upload.mp4"
        source.write_bytes(b"mdat....moov")
        return str(source)

    def test_success_returns_derived_path(self, monkeypatch, tmp_path):
        def write_output(cmd):
            with open(cmd[-1], "wb") as f:
                f.write(b"moov....mdat")
            return completed(cmd)

        fake = RecordingRun(write_output)
        monkeypatch.setattr(ffmpeg.subprocess, "run", fake)
        source = self._source(tmp_path)

        out_path = asyncio.run(FFmpegFastStartRemuxer(ffmpeg_path="ffmpeg").remux(source))

        assert out_path == source + ".processing"
        assert out_path == processed_path_for(source)
        cmd, _ = fake.calls[0]
        assert cmd == [
            "ffmpeg", "-v", "error", "-y", "-i", source,
            "-c", "copy", "-movflags", "faststart", "-f", "mp4", out_path,
        ]

    def test_output_missing_after_success(self, monkeypatch, tmp_path):
        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(lambda cmd: completed(cmd)))

        with pytest.raises(OutputMissingError):
            asyncio.run(FFmpegFastStartRemuxer().remux(self._source(tmp_path)))

    def test_empty_output_is_not_success(self, monkeypatch, tmp_path):
        def write_empty(cmd):
            open(cmd[-1], "wb").close()
            return completed(cmd)

        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(write_empty))
        source = self._source(tmp_path)

        with pytest.raises(OutputEmptyError):
            asyncio.run(FFmpegFastStartRemuxer().remux(source))

        assert not (tmp_path / "upload.mp4.processing").exists()

    def test_failure_removes_partial_output(self, monkeypatch, tmp_path):
        def fail_midway(cmd):
            with open(cmd[-1], "wb") as f:
                f.write(b"partial")
            return completed(cmd, returncode=1, stderr="Invalid data found")

        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(fail_midway))

        with pytest.raises(RemuxFailedError) as exc_info:
            asyncio.run(FFmpegFastStartRemuxer().remux(self._source(tmp_path)))

        assert "Invalid data found" in exc_info.value.diagnostics
        assert not (tmp_path / "upload.mp4.processing").exists()

    def test_timeout_is_a_remux_failure(self, monkeypatch, tmp_path):
        def hang(cmd):
            raise subprocess.TimeoutExpired(cmd, 300, stderr=b"frame=  120 size=  2048kB")

        monkeypatch.setattr(ffmpeg.subprocess, "run", RecordingRun(hang))

        with pytest.raises(RemuxFailedError, match="timed out") as exc_info:
            asyncio.run(FFmpegFastStartRemuxer().remux(self._source(tmp_path)))

        assert exc_info.value.diagnostics == "frame=  120 size=  2048kB"

    def test_empty_path_rejected_without_running_tool(self, monkeypatch):
        fake = RecordingRun(lambda cmd: completed(cmd))
        monkeypatch.setattr(ffmpeg.subprocess, "run", fake)

        with pytest.raises(InvalidInputError):
            asyncio.run(FFmpegFastStartRemuxer().remux(""))

        assert fake.calls == []


class TestMockFastStartRemuxer:
    def test_copies_to_derived_path(self, tmp_path):
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"video-bytes")

        out_path = asyncio.run(MockFastStartRemuxer().remux(str(source)))

        assert out_path == str(source) + ".processing"
        assert (tmp_path / "clip.mp4.processing").read_bytes() == b"video-bytes"

    def test_empty_input_yields_output_empty(self, tmp_path):
        source = tmp_path / "empty.mp4"
        source.write_bytes(b"")

        with pytest.raises(OutputEmptyError):
            asyncio.run(MockFastStartRemuxer().remux(str(source)))
