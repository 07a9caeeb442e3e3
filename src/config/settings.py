"""
Service settings, read from the environment or a .env file.

S3_MOCK_MODE and MEDIA_MOCK_MODE let the service run with no bucket and
no FFmpeg install.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Every field maps to an upper-case environment variable of the same
    name. List-valued settings are comma-separated strings.
    """

    # API Configuration
    api_title: str = "Tubely API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Externally reachable base URL, used to build thumbnail links."
    )

    # S3 Storage Configuration
    s3_bucket: str = Field(
        default="tubely-videos",
        description="Bucket that uploaded videos are stored in"
    )
    s3_region: str = Field(
        default="us-east-1",
        description="Bucket region"
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for S3-compatible stores (R2, MinIO). Leave unset for AWS."
    )
    s3_access_key_id: str = Field(
        default="",
        description="Access key ID. Empty falls back to the default boto3 credential chain."
    )
    s3_secret_access_key: str = Field(
        default="",
        description="Secret access key"
    )
    s3_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real S3. Enables local dev without object storage."
    )
    s3_connect_timeout_seconds: float = Field(
        default=5.0,
        description="Connect timeout for storage calls"
    )
    s3_read_timeout_seconds: float = Field(
        default=60.0,
        description="Read timeout for storage calls. Uploads of large videos need headroom."
    )

    # Media tools
    ffmpeg_path: str = Field(default="ffmpeg", description="Path to ffmpeg binary")
    ffprobe_path: str = Field(default="ffprobe", description="Path to ffprobe binary")
    media_mock_mode: bool = Field(
        default=False,
        description="Skip FFmpeg entirely: fixed 1920x1080 geometry, remux is a file copy."
    )
    probe_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound on a single ffprobe run"
    )
    remux_timeout_seconds: float = Field(
        default=300.0,
        description="Upper bound on a single ffmpeg faststart remux"
    )

    # Application Behavior
    max_video_size_mb: int = Field(
        default=1024,
        description="Maximum video upload size in MB."
    )
    max_thumbnail_size_mb: int = Field(
        default=10,
        description="Maximum thumbnail upload size in MB."
    )
    signed_url_expiry_seconds: int = Field(
        default=900,
        description="Lifetime of signed video URLs. Clamped to (0, 7 days]."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def max_video_size_bytes(self) -> int:
        return self.max_video_size_mb * 1024 * 1024

    @property
    def max_thumbnail_size_bytes(self) -> int:
        return self.max_thumbnail_size_mb * 1024 * 1024

    def validate_required_fields(self) -> list[str]:
        """
        Names of settings that are missing or unusable.

        Reported at startup and by the readiness probe rather than raised,
        so a misconfigured instance still serves /health.
        """
        missing = []

        if not self.s3_bucket:
            missing.append("S3_BUCKET")

        if "," in self.s3_bucket:
            missing.append("S3_BUCKET (must not contain ',')")

        # keys may come from the boto3 credential chain, but must be paired
        if not self.s3_mock_mode:
            if self.s3_access_key_id and not self.s3_secret_access_key:
                missing.append("S3_SECRET_ACCESS_KEY")
            if self.s3_secret_access_key and not self.s3_access_key_id:
                missing.append("S3_ACCESS_KEY_ID")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process. Tests override this dependency."""
    return Settings()
