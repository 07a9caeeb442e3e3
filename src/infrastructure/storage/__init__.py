"""
Object storage integration for uploaded videos and thumbnails.

Supports S3 and S3-compatible stores (R2, MinIO) via boto3.
Includes mock mode for local development without credentials.
"""

from .client import (
    MAX_URL_EXPIRY,
    MockStorageClient,
    S3StorageClient,
    StorageConfig,
    clamp_expiry,
    create_storage_client,
)
from .thumbnails import ThumbnailStore

__all__ = [
    "MAX_URL_EXPIRY",
    "MockStorageClient",
    "S3StorageClient",
    "StorageConfig",
    "clamp_expiry",
    "create_storage_client",
    "ThumbnailStore",
]
