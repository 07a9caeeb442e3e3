"""
Video API endpoints.

Flow for a client:
1. Create a draft video record (title, description)
2. Upload the MP4 → probed, classified, remuxed for fast start, stored
3. Optionally upload a thumbnail
4. Read the record back → video_url is a short-lived signed link

Stored records keep the "<bucket>,<key>" reference; signed links are
computed on every read and never persisted.
"""

import logging
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, HTTPException, Response, UploadFile, status
from pydantic import BaseModel, Field

from ...core.videos.errors import (
    ExternalToolError,
    InputValidationError,
    MalformedReferenceError,
    NoVideoStreamError,
    ProbeFailedError,
    ProbeOutputInvalidError,
    SigningFailedError,
    UploadTooLargeError,
    VideoPipelineError,
)
from ...core.videos.models import Thumbnail, VideoRecord, utc_now
from ...core.videos.pipeline import VideoIngestionPipeline, receive_upload
from ...infrastructure.database.videos import VideoNotFoundError, VideoRepository
from ..dependencies import (
    CurrentUserId,
    IngestionPipelineDep,
    SettingsDep,
    ThumbnailStoreDep,
    VideoRepositoryDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()
thumbnails_router = APIRouter()

ACCEPTED_VIDEO_TYPE = "video/mp4"


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CreateVideoRequest(BaseModel):
    """Request to create a draft video record."""
    title: str = Field(min_length=1, max_length=200, description="Video title")
    description: str = Field(default="", max_length=5000, description="Video description")


class VideoResponse(BaseModel):
    """A video record as returned to clients."""
    id: UUID = Field(description="Video identifier")
    user_id: str = Field(description="Owner")
    title: str = Field(description="Video title")
    description: str = Field(description="Video description")
    created_at: datetime = Field(description="Creation time (UTC)")
    updated_at: datetime = Field(description="Last update time (UTC)")
    thumbnail_url: Optional[str] = Field(None, description="Thumbnail link")
    video_url: Optional[str] = Field(None, description="Signed, time-limited video link")

    @classmethod
    def from_record(cls, record: VideoRecord) -> "VideoResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            title=record.title,
            description=record.description,
            created_at=record.created_at,
            updated_at=record.updated_at,
            thumbnail_url=record.thumbnail_url,
            video_url=record.video_url,
        )


class VideoListResponse(BaseModel):
    """The caller's videos."""
    videos: list[VideoResponse] = Field(description="Videos, newest first")
    total: int = Field(description="Number of videos")


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def parse_media_type(content_type: Optional[str]) -> str:
    """'video/MP4; codecs="avc1"' -> 'video/mp4'. Empty string if missing."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _get_owned_video(repository: VideoRepository, video_id: UUID, user_id: str) -> VideoRecord:
    try:
        record = repository.get(video_id)
    except VideoNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found",
        )

    if record.user_id != user_id:
        logger.warning(
            "Video access denied",
            extra={"video_id": str(video_id), "user_id": user_id}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not own this video",
        )

    return record


def _malformed_reference_error(video_id: Optional[UUID], e: MalformedReferenceError) -> HTTPException:
    # corruption of state we wrote ourselves; keep it loud in the logs
    logger.error(
        "Stored video reference is malformed",
        extra={"video_id": str(video_id), "reason": e.reason}
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Stored video location is corrupt",
    )


def _pipeline_error_to_http(video_id: UUID, e: VideoPipelineError) -> HTTPException:
    if isinstance(e, UploadTooLargeError):
        return HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(e),
        )

    if isinstance(e, InputValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if isinstance(e, (ProbeFailedError, ProbeOutputInvalidError, NoVideoStreamError)):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not read video: {e}",
        )

    extra = {"video_id": str(video_id), "error": str(e), "error_type": type(e).__name__}
    if isinstance(e, ExternalToolError) and e.diagnostics:
        extra["diagnostics"] = e.diagnostics
    logger.error("Video ingestion failed", extra=extra)

    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Failed to process video",
    )


async def _sign_single(pipeline: VideoIngestionPipeline, record: VideoRecord) -> VideoRecord:
    try:
        return await pipeline.sign_record(record)
    except MalformedReferenceError as e:
        raise _malformed_reference_error(record.id, e)
    except SigningFailedError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not generate video link",
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a video record",
    description="Create a draft video. Upload the file afterwards.",
)
async def create_video(
    request: CreateVideoRequest,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
) -> VideoResponse:
    try:
        draft = VideoRecord(user_id=user_id, title=request.title, description=request.description)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    record = repository.create(draft)

    logger.info("Video record created", extra={"video_id": str(record.id), "user_id": user_id})

    return VideoResponse.from_record(record)


@router.get(
    "",
    response_model=VideoListResponse,
    status_code=status.HTTP_200_OK,
    summary="List my videos",
    description="All videos owned by the caller, with freshly signed links.",
)
async def list_videos(
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    pipeline: IngestionPipelineDep,
) -> VideoListResponse:
    records = repository.list_for_user(user_id)

    try:
        signed = await pipeline.sign_records(records)
    except MalformedReferenceError as e:
        video_id = next(
            (r.id for r in records if r.video_url == e.value),
            None,
        )
        raise _malformed_reference_error(video_id, e)

    return VideoListResponse(
        videos=[VideoResponse.from_record(r) for r in signed],
        total=len(signed),
    )


@router.get(
    "/{video_id}",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a video",
)
async def get_video(
    video_id: UUID,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    pipeline: IngestionPipelineDep,
) -> VideoResponse:
    record = _get_owned_video(repository, video_id, user_id)
    return VideoResponse.from_record(await _sign_single(pipeline, record))


@router.post(
    "/{video_id}/upload",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload the video file",
    description="Upload an MP4. It is remuxed for fast start and stored under an orientation prefix.",
)
async def upload_video(
    video_id: UUID,
    video: Annotated[UploadFile, File(description="MP4 video")],
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    pipeline: IngestionPipelineDep,
    settings: SettingsDep,
) -> VideoResponse:
    """
    Ingest an uploaded MP4 for an existing record.

    The raw upload and the remuxed copy live in request-scoped temp files
    that are removed however the request ends. The record is written back
    only after the object is stored, so a failure leaves it untouched.
    """
    record = _get_owned_video(repository, video_id, user_id)

    media_type = parse_media_type(video.content_type)
    if not media_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Content-Type for video",
        )
    if media_type != ACCEPTED_VIDEO_TYPE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported video type: {media_type}. Only {ACCEPTED_VIDEO_TYPE} is accepted.",
        )

    logger.info(
        "Video upload started",
        extra={
            "video_id": str(video_id),
            "user_id": user_id,
            "video_filename": video.filename,
        }
    )

    try:
        async with receive_upload(
            video.file,
            content_type=media_type,
            max_bytes=settings.max_video_size_bytes,
        ) as uploaded:
            updated = await pipeline.ingest(record, uploaded)
    except VideoPipelineError as e:
        raise _pipeline_error_to_http(video_id, e)

    repository.update(updated)

    logger.info(
        "Video upload finished",
        extra={"video_id": str(video_id), "user_id": user_id}
    )

    # the upload succeeded; a signing hiccup should not turn it into an error
    [signed] = await pipeline.sign_records([updated])
    return VideoResponse.from_record(signed)


@router.post(
    "/{video_id}/thumbnail",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload a thumbnail",
)
async def upload_thumbnail(
    video_id: UUID,
    thumbnail: Annotated[UploadFile, File(description="Thumbnail image")],
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    thumbnails: ThumbnailStoreDep,
    pipeline: IngestionPipelineDep,
    settings: SettingsDep,
) -> VideoResponse:
    record = _get_owned_video(repository, video_id, user_id)

    media_type = parse_media_type(thumbnail.content_type)
    if not media_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Thumbnail must be an image",
        )

    data = await thumbnail.read(settings.max_thumbnail_size_bytes + 1)
    if len(data) > settings.max_thumbnail_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Thumbnail too large. Maximum size: {settings.max_thumbnail_size_mb}MB",
        )

    thumbnails.put(video_id, Thumbnail(media_type=media_type, data=data))

    record.thumbnail_url = f"{settings.public_base_url.rstrip('/')}/api/v1/thumbnails/{video_id}"
    record.updated_at = utc_now()
    repository.update(record)

    logger.info("Thumbnail uploaded", extra={"video_id": str(video_id), "size_bytes": len(data)})

    return VideoResponse.from_record(await _sign_single(pipeline, record))


@thumbnails_router.get(
    "/{video_id}",
    summary="Get a thumbnail",
    responses={200: {"content": {"image/*": {}}}},
)
async def get_thumbnail(video_id: UUID, thumbnails: ThumbnailStoreDep) -> Response:
    thumbnail = thumbnails.get(video_id)
    if thumbnail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Thumbnail not found",
        )
    return Response(content=thumbnail.data, media_type=thumbnail.media_type)
