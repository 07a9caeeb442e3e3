"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- media: FFprobe/FFmpeg child processes
- storage: Object storage (S3-compatible) and the thumbnail store
- database: Video record persistence

These wrappers translate between external formats and our domain models.
"""
