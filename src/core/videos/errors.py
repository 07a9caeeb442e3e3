"""
Error taxonomy for the video ingestion pipeline.

Each stage raises a specific subclass so routes can decide what to tell
the client, while the category base classes group them the way operators
think about failures:

- InputValidationError: the caller gave us something unusable
- ExternalToolError: ffprobe/ffmpeg failed or produced nonsense
- StorageServiceError: the object store rejected us
- DataIntegrityError: previously trusted persisted state is corrupt

Nothing in the pipeline retries. The first failure aborts the request.
"""


class VideoPipelineError(Exception):
    """Base class for all ingestion and read-path failures."""
    pass


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class InputValidationError(VideoPipelineError):
    """Raised before any external call when inputs are unusable."""
    pass


class InvalidInputError(InputValidationError):
    """Empty or otherwise unusable local file path."""
    pass


class InvalidReferenceError(InputValidationError):
    """Bucket or key is empty (or cannot be encoded unambiguously)."""
    pass


class UploadTooLargeError(InputValidationError):
    """Uploaded stream exceeded the configured size limit."""

    def __init__(self, max_bytes: int) -> None:
        super().__init__(f"Upload exceeds maximum size of {max_bytes} bytes")
        self.max_bytes = max_bytes


# ---------------------------------------------------------------------------
# External tools (ffprobe / ffmpeg)
# ---------------------------------------------------------------------------

class ExternalToolError(VideoPipelineError):
    """
    Failure of an external media tool.

    `diagnostics` carries whatever the tool wrote to stderr so it ends up
    in logs instead of being lost.
    """

    def __init__(self, message: str, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics


class ProbeFailedError(ExternalToolError):
    """ffprobe exited nonzero, could not be started, or timed out."""
    pass


class ProbeOutputInvalidError(ExternalToolError):
    """ffprobe succeeded but its output was not the JSON we expect."""
    pass


class NoVideoStreamError(ExternalToolError):
    """No stream with codec_type 'video' and positive dimensions."""
    pass


class RemuxFailedError(ExternalToolError):
    """ffmpeg exited nonzero, could not be started, or timed out."""
    pass


class OutputMissingError(ExternalToolError):
    """ffmpeg reported success but the output file does not exist."""
    pass


class OutputEmptyError(ExternalToolError):
    """ffmpeg reported success but the output file is zero bytes."""
    pass


# ---------------------------------------------------------------------------
# Key generation
# ---------------------------------------------------------------------------

class KeyGenerationError(VideoPipelineError):
    """The OS entropy source failed. Treated as fatal for the request."""
    pass


# ---------------------------------------------------------------------------
# Object storage
# ---------------------------------------------------------------------------

class StorageServiceError(VideoPipelineError):
    """Object storage transport or service-side failure."""
    pass


class UploadFailedError(StorageServiceError):
    """put_object was rejected or the transport failed."""
    pass


class SigningFailedError(StorageServiceError):
    """Presigned URL generation failed."""
    pass


# ---------------------------------------------------------------------------
# Data integrity
# ---------------------------------------------------------------------------

class DataIntegrityError(VideoPipelineError):
    """Persisted state that we wrote ourselves no longer makes sense."""
    pass


class MalformedReferenceError(DataIntegrityError):
    """A stored video reference does not decode to (bucket, key)."""

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"Malformed video reference {value!r}: {reason}")
        self.value = value
        self.reason = reason
