"""
Domain models for video ingestion.

These models describe what an upload *is* (its geometry, its orientation,
where it ended up) without knowing about FastAPI, boto3 or ffmpeg.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from .errors import InvalidReferenceError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Orientation(Enum):
    """
    Coarse orientation label derived from the aspect ratio.

    The value doubles as the storage key prefix, so changing a value
    changes where new uploads land in the bucket.
    """
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


@dataclass(frozen=True)
class StreamGeometry:
    """
    Pixel dimensions of the first usable video stream.

    Frozen because geometry is computed once per upload and never changes.
    """
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Stream dimensions must be positive, got {self.width}x{self.height}"
            )

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class ObjectReference:
    """Durable identity of a stored object: which bucket, which key."""
    bucket: str
    key: str

    def __post_init__(self) -> None:
        if not self.bucket or not self.key:
            raise InvalidReferenceError("bucket and key are required")


@dataclass(frozen=True)
class UploadedFile:
    """
    A client upload spooled to a request-scoped temporary file.

    Created by `receive_upload`, which also owns deleting it.
    """
    path: str
    content_type: str
    size: int


@dataclass
class VideoRecord:
    """
    A video as the persistence layer stores it.

    `video_url` holds the encoded "<bucket>,<key>" reference once an upload
    succeeds. On reads it is swapped for a signed URL on a copy of the
    record; the stored value is never rewritten by signing.
    """
    user_id: str
    title: str
    description: str = ""
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("Video title cannot be empty")


@dataclass(frozen=True)
class Thumbnail:
    """Thumbnail image bytes with their media type."""
    media_type: str
    data: bytes
