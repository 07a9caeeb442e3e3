"""
Object storage client for uploaded videos.

Talks to S3 (or any S3-compatible store such as R2 or MinIO) through
boto3, with a mock mode for local development.

Two operations matter to the pipeline:
- upload_object: stream a local file into a bucket under a key
- generate_presigned_url: hand out a time-limited GET link for one object

Presigned URLs are never stored. The bucket stays private and every read
of a video record gets a freshly signed link.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.core.videos.errors import (
    InvalidReferenceError,
    SigningFailedError,
    UploadFailedError,
)
from src.core.videos.pipeline import DEFAULT_URL_EXPIRY, ObjectStore

logger = logging.getLogger(__name__)

# SigV4 presigned URLs cannot outlive 7 days
MAX_URL_EXPIRY = timedelta(days=7)
# ExpiresIn is whole seconds; anything shorter would sign an already-expired URL
MIN_URL_EXPIRY = timedelta(seconds=1)


def clamp_expiry(requested: Optional[timedelta]) -> timedelta:
    """
    Normalize a requested URL lifetime.

    Missing, or shorter than one second (zero and negative included)
    -> 15 minute default.
    Longer than 7 days -> exactly 7 days.
    Never raises; out-of-range requests are corrected, not rejected.
    """
    if requested is None or requested < MIN_URL_EXPIRY:
        return DEFAULT_URL_EXPIRY
    if requested > MAX_URL_EXPIRY:
        return MAX_URL_EXPIRY
    return requested


def _require_reference(bucket: str, key: str) -> None:
    if not bucket or not key:
        raise InvalidReferenceError("bucket and key are required")


@dataclass
class StorageConfig:
    """
    Configuration for S3-compatible storage.

    endpoint_url is only needed for non-AWS stores (R2, MinIO, localstack).
    """
    access_key_id: str
    secret_access_key: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 60.0


class S3StorageClient:
    """
    S3 object storage client.

    boto3 is synchronous, so calls that hit the network run in a worker
    thread to keep the event loop free. Retries are disabled: a failed
    upload or signature is reported, not retried.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config

        boto_config = Config(
            signature_version="s3v4",
            connect_timeout=config.connect_timeout_seconds,
            read_timeout=config.read_timeout_seconds,
            retries={"max_attempts": 1},
        )

        self._s3_client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id or None,
            aws_secret_access_key=config.secret_access_key or None,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage client",
            extra={
                "region": config.region,
                "endpoint": config.endpoint_url or "aws",
            }
        )

    async def upload_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        content_type: str,
    ) -> None:
        """
        Upload a file-like body to bucket/key.

        The caller is responsible for having `body` at offset zero.
        """
        _require_reference(bucket, key)

        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to upload object",
                extra={"bucket": bucket, "key": key, "error": str(e)}
            )
            raise UploadFailedError(f"Upload to storage failed: {e}") from e

        logger.info(
            "Uploaded object",
            extra={"bucket": bucket, "key": key, "content_type": content_type}
        )

    async def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        expires_in: timedelta = DEFAULT_URL_EXPIRY,
    ) -> str:
        """
        Generate a temporary GET URL for one object.

        Signing is a local computation with the configured credentials,
        so this does not touch the network.
        """
        _require_reference(bucket, key)
        expiry = clamp_expiry(expires_in)

        try:
            url = self._s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=int(expiry.total_seconds()),
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to generate presigned URL",
                extra={"bucket": bucket, "key": key, "error": str(e)}
            )
            raise SigningFailedError(f"Presigned URL generation failed: {e}") from e

        return url


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory object storage for local development and tests.

    Objects are kept in a dict keyed by (bucket, key). "Presigned" URLs
    carry the same query parameters a real SigV4 URL would expose
    (expiry, date, signature) so clients can be exercised end to end.
    """

    def __init__(self, base_url: str = "mock://storage") -> None:
        self._base_url = base_url.rstrip("/")
        self._objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        logger.info("Initialized mock storage client (in-memory)")

    async def upload_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        content_type: str,
    ) -> None:
        _require_reference(bucket, key)
        data = body.read()
        self._objects[(bucket, key)] = (data, content_type)

        logger.debug(
            "Stored object in mock storage",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )

    async def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        expires_in: timedelta = DEFAULT_URL_EXPIRY,
    ) -> str:
        _require_reference(bucket, key)
        expiry = clamp_expiry(expires_in)
        signed_at = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())

        return (
            f"{self._base_url}/{quote(bucket)}/{quote(key)}"
            f"?X-Amz-Date={signed_at}"
            f"&X-Amz-Expires={int(expiry.total_seconds())}"
            f"&X-Amz-Signature={secrets.token_hex(32)}"
        )

    def get_object(self, bucket: str, key: str) -> tuple[bytes, str]:
        """Return (data, content_type) for a stored object. Test helper."""
        return self._objects[(bucket, key)]

    @property
    def object_count(self) -> int:
        return len(self._objects)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> ObjectStore:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        ObjectStore implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)
