"""
Liveness and readiness probes.

/health answers as long as the process is up. /health/ready also checks
that the bucket settings are usable and that the media binaries run,
since an upload cannot succeed without them.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...infrastructure.media.ffmpeg import media_tool_available
from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness payload."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Outcome of one readiness probe."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


async def _check_binary(name: str, path: str, mock_mode: bool) -> ReadinessCheck:
    if mock_mode:
        return ReadinessCheck(name=name, status="ok", error="mock mode")
    if await asyncio.to_thread(media_tool_available, path):
        return ReadinessCheck(name=name, status="ok")
    return ReadinessCheck(name=name, status="error", error=f"{path} not runnable")


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Always 200 while the process is serving requests.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "bucket": settings.s3_bucket,
            "mock_mode": {
                "s3": settings.s3_mock_mode,
                "media": settings.media_mock_mode,
            }
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    description="200 when storage settings are valid and ffmpeg/ffprobe run; 503 otherwise.",
    responses={
        503: {
            "description": "Uploads would fail right now",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(settings: SettingsDep, response: Response) -> ReadinessResponse:
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        config_check = ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing or invalid: {', '.join(missing_fields)}",
        )
    else:
        config_check = ReadinessCheck(name="configuration", status="ok")

    checks = [
        config_check,
        await _check_binary("ffmpeg", settings.ffmpeg_path, settings.media_mock_mode),
        await _check_binary("ffprobe", settings.ffprobe_path, settings.media_mock_mode),
    ]

    ready = all(c.status == "ok" for c in checks)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Not ready to accept uploads",
            extra={"failed_checks": [c.name for c in checks if c.status != "ok"]}
        )

    return ReadinessResponse(
        status="ready" if ready else "not_ready",
        version=__version__,
        checks=checks,
    )
