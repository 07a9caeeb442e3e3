"""
Tubely API application.

Run locally with mock storage and media tools:
    S3_MOCK_MODE=true MEDIA_MOCK_MODE=true uvicorn src.main:app --reload

Behind a process manager:
    gunicorn src.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import health, videos
from .config.settings import get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # bad config is reported here and by /health/ready, but does not stop startup
    settings = get_settings()

    logger.info(
        "Tubely API starting",
        extra={
            "version": __version__,
            "bucket": settings.s3_bucket,
            "mock_mode": {
                "s3": settings.s3_mock_mode,
                "media": settings.media_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("Tubely API shutting down")


def create_app() -> FastAPI:
    """Build the app: CORS, routers, and a catch-all 500 handler."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Video upload and delivery.

        ## Authentication

        All `/api/v1/videos` endpoints require an API key in the `X-API-Key`
        header and the caller's identity in `X-User-ID`.

        ## Workflow

        1. **Create**: `POST /api/v1/videos`
        2. **Upload**: `POST /api/v1/videos/{video_id}/upload` (multipart `video`, MP4 only)
        3. **Thumbnail**: `POST /api/v1/videos/{video_id}/thumbnail` (multipart `thumbnail`)
        4. **Watch**: `GET /api/v1/videos/{video_id}` returns a signed `video_url`
           valid for 15 minutes. Fetch the record again for a fresh link.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        videos.router,
        prefix="/api/v1/videos",
        tags=["Videos"],
    )

    app.include_router(
        videos.thumbnails_router,
        prefix="/api/v1/thumbnails",
        tags=["Thumbnails"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Tubely API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        # tracebacks go to the log only
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
