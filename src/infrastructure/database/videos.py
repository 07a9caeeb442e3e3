"""
Repository for video records.

The pipeline treats persistence as a collaborator with two operations it
cares about: get a record, and write an updated record back. Create and
list exist for the API surface around it.

Only an in-memory implementation ships. It keeps copies of records so a
caller mutating a returned object never changes what is stored; the only
way to change stored state is update().
"""

import logging
import threading
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from src.core.videos.models import VideoRecord

logger = logging.getLogger(__name__)


class VideoNotFoundError(Exception):
    """Raised when a requested video doesn't exist."""

    def __init__(self, video_id: UUID) -> None:
        super().__init__(f"Video not found: {video_id}")
        self.video_id = video_id


class VideoRepository(Protocol):
    """
    Protocol for video record persistence.

    Using a protocol means tests and a future real database can plug in
    without the routes noticing.
    """

    def create(self, record: VideoRecord) -> VideoRecord: ...
    def get(self, video_id: UUID) -> VideoRecord: ...
    def update(self, record: VideoRecord) -> None: ...
    def list_for_user(self, user_id: str) -> list[VideoRecord]: ...


class InMemoryVideoRepository:
    """
    In-memory video storage for local development and tests.

    Not suitable for production: data is lost on restart and is not
    shared between worker processes.
    """

    def __init__(self) -> None:
        self._videos: dict[UUID, VideoRecord] = {}
        self._lock = threading.Lock()
        logger.info("Initialized in-memory video repository")

    def create(self, record: VideoRecord) -> VideoRecord:
        with self._lock:
            if record.id in self._videos:
                raise ValueError(f"Video already exists: {record.id}")
            self._videos[record.id] = replace(record)

        logger.debug(
            "Created video record",
            extra={"video_id": str(record.id), "user_id": record.user_id}
        )
        return replace(record)

    def get(self, video_id: UUID) -> VideoRecord:
        with self._lock:
            record = self._videos.get(video_id)
        if record is None:
            raise VideoNotFoundError(video_id)
        return replace(record)

    def update(self, record: VideoRecord) -> None:
        """Overwrite the stored record. Fields are replaced, never merged."""
        with self._lock:
            if record.id not in self._videos:
                raise VideoNotFoundError(record.id)
            self._videos[record.id] = replace(record)

        logger.debug("Updated video record", extra={"video_id": str(record.id)})

    def list_for_user(self, user_id: str) -> list[VideoRecord]:
        """Newest first."""
        with self._lock:
            records = [replace(r) for r in self._videos.values() if r.user_id == user_id]
        return sorted(records, key=lambda r: r.created_at, reverse=True)
