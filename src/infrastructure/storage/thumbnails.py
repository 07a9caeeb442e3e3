"""
In-memory thumbnail store.

Thumbnails are small and regenerated by clients easily, so they live in
process memory keyed by video ID. The store has its own lifecycle and is
not shared with the video pipeline.
"""

import logging
import threading
from typing import Optional
from uuid import UUID

from src.core.videos.models import Thumbnail

logger = logging.getLogger(__name__)


class ThumbnailStore:
    """Thread-safe dict of video ID -> Thumbnail. Last write wins."""

    def __init__(self) -> None:
        self._thumbnails: dict[UUID, Thumbnail] = {}
        self._lock = threading.Lock()

    def put(self, video_id: UUID, thumbnail: Thumbnail) -> None:
        with self._lock:
            self._thumbnails[video_id] = thumbnail

        logger.debug(
            "Stored thumbnail",
            extra={
                "video_id": str(video_id),
                "media_type": thumbnail.media_type,
                "size_bytes": len(thumbnail.data),
            }
        )

    def get(self, video_id: UUID) -> Optional[Thumbnail]:
        with self._lock:
            return self._thumbnails.get(video_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._thumbnails)
