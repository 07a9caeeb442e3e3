"""
Tubely - video upload and delivery API.

This package contains the complete application:
- core: Framework-agnostic ingestion logic
- infrastructure: FFmpeg, object storage and persistence integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
