"""
Video ingestion pipeline.

Write path, run once per upload request:

    inspect -> classify -> remux -> generate key -> upload -> encode reference

Read path, run per record just before it leaves the API:

    decode reference -> presign

Every stage runs sequentially and the first failure aborts the rest.
Nothing is retried. The pipeline never mutates the record it is given;
it returns an updated copy, so a failed upload cannot leave a half-written
video_url behind.

The collaborators (ffprobe, ffmpeg, object storage) sit behind narrow
protocols so tests can swap in fakes without real binaries or buckets.
"""

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import timedelta
from typing import AsyncIterator, BinaryIO, Optional, Protocol

from .errors import InvalidReferenceError, SigningFailedError, UploadTooLargeError
from .keys import generate_video_key
from .models import StreamGeometry, UploadedFile, VideoRecord, utc_now
from .orientation import classify_geometry
from .reference import REFERENCE_SEPARATOR, decode_reference, encode_reference

logger = logging.getLogger(__name__)

DEFAULT_URL_EXPIRY = timedelta(minutes=15)
UPLOAD_CHUNK_SIZE = 1024 * 1024
UPLOAD_TEMP_PREFIX = "tubely-upload-"


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class MediaInspector(Protocol):
    """Reads stream geometry from a local media file."""

    async def inspect(self, path: str) -> StreamGeometry:
        ...


class FastStartRemuxer(Protocol):
    """Rewrites a local MP4 with its moov atom up front. Returns the new path."""

    async def remux(self, path: str) -> str:
        ...


class ObjectStore(Protocol):
    """The two object storage operations the pipeline needs."""

    async def upload_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        content_type: str,
    ) -> None:
        ...

    async def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        expires_in: timedelta = DEFAULT_URL_EXPIRY,
    ) -> str:
        ...


# ---------------------------------------------------------------------------
# Request-scoped temp files
# ---------------------------------------------------------------------------

@asynccontextmanager
async def receive_upload(
    stream: BinaryIO,
    content_type: str,
    max_bytes: int,
) -> AsyncIterator[UploadedFile]:
    """
    Spool a client stream into a fresh temp file for the request.

    The copy runs in a worker thread; a large upload must not hold up the
    event loop. The file is deleted when the block exits, whatever
    happened inside.
    """
    fd, path = tempfile.mkstemp(prefix=UPLOAD_TEMP_PREFIX, suffix=".mp4")
    try:
        size = await asyncio.to_thread(_spool, stream, fd, max_bytes)

        logger.debug(
            "Spooled upload to temp file",
            extra={"path": path, "size_bytes": size},
        )

        yield UploadedFile(path=path, content_type=content_type, size=size)
    finally:
        _remove_quietly(path)


def _spool(stream: BinaryIO, fd: int, max_bytes: int) -> int:
    size = 0
    with os.fdopen(fd, "wb") as dst:
        while True:
            chunk = stream.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise UploadTooLargeError(max_bytes)
            dst.write(chunk)
    return size


def _remove_quietly(path: Optional[str]) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove temp file", extra={"path": path, "error": str(e)})


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class VideoIngestionPipeline:
    """
    Turns an uploaded file into a stored object and a persisted reference,
    and turns persisted references back into signed URLs.
    """

    def __init__(
        self,
        inspector: MediaInspector,
        remuxer: FastStartRemuxer,
        storage: ObjectStore,
        bucket: str,
        url_expiry: timedelta = DEFAULT_URL_EXPIRY,
    ) -> None:
        if not bucket:
            raise InvalidReferenceError("bucket is required")
        if REFERENCE_SEPARATOR in bucket:
            raise InvalidReferenceError(
                f"bucket name must not contain {REFERENCE_SEPARATOR!r}: {bucket!r}"
            )
        self._inspector = inspector
        self._remuxer = remuxer
        self._storage = storage
        self._bucket = bucket
        self._url_expiry = url_expiry

    async def ingest(self, record: VideoRecord, upload: UploadedFile) -> VideoRecord:
        """
        Run the write path for one upload.

        Returns a copy of `record` whose video_url is the encoded reference.
        The caller persists it. `upload` stays owned by the caller; the
        remuxed copy is created and removed here.
        """
        logger.info(
            "Video ingestion started",
            extra={
                "video_id": str(record.id),
                "size_bytes": upload.size,
                "content_type": upload.content_type,
            },
        )

        geometry = await self._inspector.inspect(upload.path)
        orientation = classify_geometry(geometry)

        logger.info(
            "Video classified",
            extra={
                "video_id": str(record.id),
                "resolution": geometry.resolution,
                "orientation": orientation.value,
            },
        )

        processed_path = await self._remuxer.remux(upload.path)
        try:
            key = generate_video_key(orientation)
            # must fail before upload_object, or the object is orphaned
            reference = encode_reference(self._bucket, key)

            with open(processed_path, "rb") as source:
                # no implicit rewind between readers
                source.seek(0)
                await self._storage.upload_object(
                    bucket=self._bucket,
                    key=key,
                    body=source,
                    content_type=upload.content_type,
                )
        finally:
            _remove_quietly(processed_path)

        updated = replace(
            record,
            video_url=reference,
            updated_at=utc_now(),
        )

        logger.info(
            "Video ingestion finished",
            extra={"video_id": str(record.id), "bucket": self._bucket, "key": key},
        )

        return updated

    async def sign_record(
        self,
        record: VideoRecord,
        expires_in: Optional[timedelta] = None,
    ) -> VideoRecord:
        """
        Return a copy of `record` with its reference swapped for a signed URL.

        Records without a reference come back as-is. A malformed reference
        raises MalformedReferenceError; it is corruption, not absence.
        """
        reference = decode_reference(record.video_url)
        if reference is None:
            return record

        signed_url = await self._storage.generate_presigned_url(
            bucket=reference.bucket,
            key=reference.key,
            expires_in=expires_in if expires_in is not None else self._url_expiry,
        )
        return replace(record, video_url=signed_url)

    async def sign_records(self, records: list[VideoRecord]) -> list[VideoRecord]:
        """
        Sign a batch of records.

        A signing failure only blanks that record's URL for this response.
        Malformed references still propagate.
        """
        signed: list[VideoRecord] = []
        for record in records:
            try:
                signed.append(await self.sign_record(record))
            except SigningFailedError as e:
                logger.error(
                    "Failed to sign video URL, returning record without it",
                    extra={"video_id": str(record.id), "error": str(e)},
                )
                signed.append(replace(record, video_url=None))
        return signed
