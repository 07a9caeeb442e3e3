"""
Request dependencies: caller authentication and the collaborators the
video routes need (repository, thumbnail store, storage, media tools,
and the ingestion pipeline built from them).

Tests swap any of these out through app.dependency_overrides.
"""

import logging
from datetime import timedelta
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.videos.pipeline import FastStartRemuxer, MediaInspector, ObjectStore, VideoIngestionPipeline
from ..infrastructure.database.videos import InMemoryVideoRepository, VideoRepository
from ..infrastructure.media.ffmpeg import create_media_tools
from ..infrastructure.storage.client import StorageConfig, create_storage_client
from ..infrastructure.storage.thumbnails import ThumbnailStore

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Process-wide collaborators. The repository and thumbnail store are
# in-memory, so they must outlive a single request to be useful.
_video_repository: Optional[InMemoryVideoRepository] = None
_thumbnail_store: Optional[ThumbnailStore] = None
_mock_storage_client = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_current_user_id(
    api_key: Annotated[str, Depends(verify_api_key)],
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Caller identity, already authenticated upstream.

    Token validation happens in front of this service; we only require
    that an identity was passed along.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header required",
        )
    return x_user_id.strip()


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_video_repository() -> VideoRepository:
    """Provide the shared in-memory video repository."""
    global _video_repository

    if _video_repository is None:
        _video_repository = InMemoryVideoRepository()
    return _video_repository


def get_thumbnail_store() -> ThumbnailStore:
    """Provide the shared in-memory thumbnail store."""
    global _thumbnail_store

    if _thumbnail_store is None:
        _thumbnail_store = ThumbnailStore()
        logger.info("Created shared thumbnail store")
    return _thumbnail_store


def get_storage_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ObjectStore:
    """
    Provide storage client for video uploads and URL signing.

    In mock mode, we reuse the same client across requests
    so that uploaded videos persist during the testing session.
    """
    global _mock_storage_client

    if settings.s3_mock_mode:
        if _mock_storage_client is None:
            _mock_storage_client = create_storage_client(mock_mode=True)
            logger.info("Created shared mock storage client for session")
        return _mock_storage_client

    config = StorageConfig(
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        connect_timeout_seconds=settings.s3_connect_timeout_seconds,
        read_timeout_seconds=settings.s3_read_timeout_seconds,
    )
    return create_storage_client(config=config)


def get_media_tools(
    settings: Annotated[Settings, Depends(get_settings)],
) -> tuple[MediaInspector, FastStartRemuxer]:
    """Provide the ffprobe inspector and ffmpeg remuxer (or their mocks)."""
    return create_media_tools(
        mock_mode=settings.media_mock_mode,
        ffmpeg_path=settings.ffmpeg_path,
        ffprobe_path=settings.ffprobe_path,
        probe_timeout_seconds=settings.probe_timeout_seconds,
        remux_timeout_seconds=settings.remux_timeout_seconds,
    )


def get_ingestion_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[ObjectStore, Depends(get_storage_client)],
    media_tools: Annotated[tuple[MediaInspector, FastStartRemuxer], Depends(get_media_tools)],
) -> VideoIngestionPipeline:
    """
    Provide the ingestion pipeline wired to the configured collaborators.

    The pipeline itself holds no state between requests, so a new one
    per request is fine.
    """
    inspector, remuxer = media_tools
    return VideoIngestionPipeline(
        inspector=inspector,
        remuxer=remuxer,
        storage=storage,
        bucket=settings.s3_bucket,
        url_expiry=timedelta(seconds=settings.signed_url_expiry_seconds),
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

CurrentUserId = Annotated[str, Depends(get_current_user_id)]
VideoRepositoryDep = Annotated[VideoRepository, Depends(get_video_repository)]
ThumbnailStoreDep = Annotated[ThumbnailStore, Depends(get_thumbnail_store)]
IngestionPipelineDep = Annotated[VideoIngestionPipeline, Depends(get_ingestion_pipeline)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
