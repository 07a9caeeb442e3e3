"""
Persistence for video records.

Repositories translate between domain models and storage.
"""

from .videos import InMemoryVideoRepository, VideoNotFoundError, VideoRepository

__all__ = ["InMemoryVideoRepository", "VideoNotFoundError", "VideoRepository"]
