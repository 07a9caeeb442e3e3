"""
Media tooling infrastructure.

Wraps FFprobe and FFmpeg for the ingestion pipeline:
- Stream geometry inspection
- Fast-start remuxing (moov atom to the front, stream copy)

Mock implementations allow local development without FFmpeg installed.
"""

from .ffmpeg import (
    FFmpegFastStartRemuxer,
    FFprobeMediaInspector,
    MockFastStartRemuxer,
    MockMediaInspector,
    create_media_tools,
    media_tool_available,
    processed_path_for,
)

__all__ = [
    "FFmpegFastStartRemuxer",
    "FFprobeMediaInspector",
    "MockFastStartRemuxer",
    "MockMediaInspector",
    "create_media_tools",
    "media_tool_available",
    "processed_path_for",
]
