"""
Video ingestion domain.

Contains the models, error taxonomy, orientation classifier, key
generator, reference codec and the pipeline that ties them together.
"""

from .errors import (
    DataIntegrityError,
    ExternalToolError,
    InputValidationError,
    InvalidInputError,
    InvalidReferenceError,
    KeyGenerationError,
    MalformedReferenceError,
    NoVideoStreamError,
    OutputEmptyError,
    OutputMissingError,
    ProbeFailedError,
    ProbeOutputInvalidError,
    RemuxFailedError,
    SigningFailedError,
    StorageServiceError,
    UploadFailedError,
    UploadTooLargeError,
    VideoPipelineError,
)
from .keys import generate_video_key
from .models import (
    ObjectReference,
    Orientation,
    StreamGeometry,
    Thumbnail,
    UploadedFile,
    VideoRecord,
)
from .orientation import classify_orientation
from .pipeline import DEFAULT_URL_EXPIRY, VideoIngestionPipeline, receive_upload
from .reference import decode_reference, encode_reference

__all__ = [
    "DataIntegrityError",
    "ExternalToolError",
    "InputValidationError",
    "InvalidInputError",
    "InvalidReferenceError",
    "KeyGenerationError",
    "MalformedReferenceError",
    "NoVideoStreamError",
    "OutputEmptyError",
    "OutputMissingError",
    "ProbeFailedError",
    "ProbeOutputInvalidError",
    "RemuxFailedError",
    "SigningFailedError",
    "StorageServiceError",
    "UploadFailedError",
    "UploadTooLargeError",
    "VideoPipelineError",
    "generate_video_key",
    "ObjectReference",
    "Orientation",
    "StreamGeometry",
    "Thumbnail",
    "UploadedFile",
    "VideoRecord",
    "classify_orientation",
    "DEFAULT_URL_EXPIRY",
    "VideoIngestionPipeline",
    "receive_upload",
    "decode_reference",
    "encode_reference",
]
