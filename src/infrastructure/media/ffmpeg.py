"""
Media inspection and fast-start remuxing using FFprobe/FFmpeg.

Two operations, both on local files the request already owns:
1. Inspect: find the first real video stream and its pixel dimensions
2. Remux: move the MP4 moov atom to the front (stream copy, no re-encode)
   so browsers can start playback before the whole file downloads

Both tools are run as child processes in a worker thread with an explicit
timeout. A hung ffmpeg is treated exactly like a failed one.
"""

import asyncio
import json
import logging
import os
import shutil
import subprocess
from typing import Any

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
from src.core.videos.pipeline import FastStartRemuxer, MediaInspector

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = ".processing"
DEFAULT_PROBE_TIMEOUT_SECONDS = 30.0
DEFAULT_REMUX_TIMEOUT_SECONDS = 300.0

# keep log lines and error messages bounded
MAX_DIAGNOSTIC_CHARS = 2000


def processed_path_for(path: str) -> str:
    """Output path the remuxer writes for a given input."""
    return path + PROCESSED_SUFFIX


def _tail(text: str) -> str:
    return text[-MAX_DIAGNOSTIC_CHARS:] if text else ""


def _as_text(output: Any) -> str:
    # TimeoutExpired may carry bytes even when text=True was requested
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output or ""


def parse_stream_geometry(raw_output: str) -> StreamGeometry:
    """
    Pull the first usable video stream out of ffprobe's JSON.

    A stream counts only if codec_type is "video" and both dimensions are
    positive integers; attached cover art and data streams are skipped.
    """
    try:
        info: Any = json.loads(raw_output)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProbeOutputInvalidError(
            f"FFprobe output is not valid JSON: {e}",
            diagnostics=_tail(raw_output or ""),
        ) from e

    if not isinstance(info, dict):
        raise ProbeOutputInvalidError("FFprobe output is not a JSON object")

    streams = info.get("streams", [])
    if not isinstance(streams, list):
        raise ProbeOutputInvalidError("FFprobe output has no streams list")

    for stream in streams:
        if not isinstance(stream, dict) or stream.get("codec_type") != "video":
            continue
        width = stream.get("width")
        height = stream.get("height")
        if isinstance(width, int) and isinstance(height, int) and width > 0 and height > 0:
            return StreamGeometry(width=width, height=height)

    raise NoVideoStreamError("No video stream with valid width and height found")


class FFprobeMediaInspector:
    """
    Media inspector backed by ffprobe.

    Only the stream list is requested; format info is not needed to
    classify orientation.
    """

    def __init__(
        self,
        ffprobe_path: str = "ffprobe",
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ) -> None:
        self._ffprobe = ffprobe_path
        self._timeout = timeout_seconds

    def _build_command(self, path: str) -> list[str]:
        return [
            self._ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            path,
        ]

    async def inspect(self, path: str) -> StreamGeometry:
        if not path:
            raise InvalidInputError("empty input file path")

        cmd = self._build_command(path)

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("FFprobe timed out", extra={"path": path, "timeout": self._timeout})
            raise ProbeFailedError(
                f"FFprobe timed out after {self._timeout}s",
                diagnostics=_tail(_as_text(e.stderr)),
            ) from e
        except OSError as e:
            logger.error("FFprobe could not be started", extra={"error": str(e)})
            raise ProbeFailedError(f"FFprobe could not be started: {e}") from e

        if result.returncode != 0:
            diagnostics = _tail(result.stderr)
            logger.error(
                "FFprobe failed",
                extra={"path": path, "returncode": result.returncode, "stderr": diagnostics},
            )
            raise ProbeFailedError(
                f"FFprobe exited with status {result.returncode}",
                diagnostics=diagnostics,
            )

        geometry = parse_stream_geometry(result.stdout)

        logger.debug(
            "Probed video geometry",
            extra={"path": path, "resolution": geometry.resolution},
        )

        return geometry


def _verify_output(out_path: str) -> str:
    """Make sure the remux actually produced something."""
    if not os.path.exists(out_path):
        raise OutputMissingError(f"Processed file missing: {out_path}")

    if os.path.getsize(out_path) == 0:
        _remove_partial(out_path)
        raise OutputEmptyError(f"Processed file is empty: {out_path}")

    return out_path


def _remove_partial(out_path: str) -> None:
    try:
        os.remove(out_path)
    except FileNotFoundError:
        pass


class FFmpegFastStartRemuxer:
    """
    Fast-start remuxer backed by ffmpeg.

    Uses `-c copy` so the streams are copied bit-for-bit; only the
    container layout changes. `-y` because a stale output from an earlier
    crash would otherwise make ffmpeg wait on a prompt.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = DEFAULT_REMUX_TIMEOUT_SECONDS,
    ) -> None:
        self._ffmpeg = ffmpeg_path
        self._timeout = timeout_seconds

    def _build_command(self, path: str, out_path: str) -> list[str]:
        return [
            self._ffmpeg,
            "-v", "error",
            "-y",
            "-i", path,
            "-c", "copy",
            "-movflags", "faststart",
            "-f", "mp4",
            out_path,
        ]

    async def remux(self, path: str) -> str:
        if not path:
            raise InvalidInputError("empty input file path")

        out_path = processed_path_for(path)
        cmd = self._build_command(path, out_path)

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            _remove_partial(out_path)
            logger.error("FFmpeg remux timed out", extra={"path": path, "timeout": self._timeout})
            raise RemuxFailedError(
                f"FFmpeg faststart timed out after {self._timeout}s",
                diagnostics=_tail(_as_text(e.stderr)),
            ) from e
        except OSError as e:
            logger.error("FFmpeg could not be started", extra={"error": str(e)})
            raise RemuxFailedError(f"FFmpeg could not be started: {e}") from e

        if result.returncode != 0:
            _remove_partial(out_path)
            diagnostics = _tail(result.stderr)
            logger.error(
                "FFmpeg remux failed",
                extra={"path": path, "returncode": result.returncode, "stderr": diagnostics},
            )
            raise RemuxFailedError(
                f"FFmpeg faststart exited with status {result.returncode}",
                diagnostics=diagnostics,
            )

        _verify_output(out_path)

        logger.debug(
            "Remuxed video for fast start",
            extra={"path": out_path, "size_bytes": os.path.getsize(out_path)},
        )

        return out_path


# ---------------------------------------------------------------------------
# Mocks for local development without FFmpeg
# ---------------------------------------------------------------------------

class MockMediaInspector:
    """Reports a fixed geometry for every file."""

    def __init__(self, width: int = 1920, height: int = 1080) -> None:
        self._geometry = StreamGeometry(width=width, height=height)
        logger.info("Initialized mock media inspector")

    async def inspect(self, path: str) -> StreamGeometry:
        if not path:
            raise InvalidInputError("empty input file path")
        return self._geometry


class MockFastStartRemuxer:
    """Copies the input to the processed path unchanged."""

    def __init__(self) -> None:
        logger.info("Initialized mock fast-start remuxer")

    async def remux(self, path: str) -> str:
        if not path:
            raise InvalidInputError("empty input file path")

        out_path = processed_path_for(path)
        try:
            await asyncio.to_thread(shutil.copyfile, path, out_path)
        except OSError as e:
            raise RemuxFailedError(f"Mock remux copy failed: {e}") from e

        return _verify_output(out_path)


def media_tool_available(tool_path: str = "ffmpeg") -> bool:
    """True if `<tool> -version` runs cleanly. Used by the readiness check."""
    try:
        result = subprocess.run(
            [tool_path, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def create_media_tools(
    mock_mode: bool = False,
    ffmpeg_path: str = "ffmpeg",
    ffprobe_path: str = "ffprobe",
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    remux_timeout_seconds: float = DEFAULT_REMUX_TIMEOUT_SECONDS,
) -> tuple[MediaInspector, FastStartRemuxer]:
    """
    Factory for the inspector/remuxer pair.

    Args:
        mock_mode: If True, return mocks (no FFmpeg required)

    Returns:
        (MediaInspector, FastStartRemuxer)
    """
    if mock_mode:
        return MockMediaInspector(), MockFastStartRemuxer()

    return (
        FFprobeMediaInspector(ffprobe_path=ffprobe_path, timeout_seconds=probe_timeout_seconds),
        FFmpegFastStartRemuxer(ffmpeg_path=ffmpeg_path, timeout_seconds=remux_timeout_seconds),
    )
