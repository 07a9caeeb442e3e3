"""
Encoding of (bucket, key) into the record's single video_url field.

The persistence layer only has one URL-shaped column for a video's
location, so we store "<bucket>,<key>" there and decode it on reads.

Decoding splits on the first comma. That is only unambiguous if the
bucket can never contain a comma, so encode refuses such buckets. Keys
may contain commas; everything after the first comma is the key.
S3 bucket names cannot contain commas anyway, so this never rejects a
real bucket.
"""

from typing import Optional

from .errors import InvalidReferenceError, MalformedReferenceError
from .models import ObjectReference

REFERENCE_SEPARATOR = ","


def encode_reference(bucket: str, key: str) -> str:
    if not bucket or not key:
        raise InvalidReferenceError("bucket and key are required")
    if REFERENCE_SEPARATOR in bucket:
        raise InvalidReferenceError(
            f"bucket name cannot contain {REFERENCE_SEPARATOR!r}: {bucket!r}"
        )
    return f"{bucket}{REFERENCE_SEPARATOR}{key}"


def decode_reference(value: Optional[str]) -> Optional[ObjectReference]:
    """
    Decode a stored reference.

    Returns None when there is no reference yet (None or empty string).
    Raises MalformedReferenceError for anything else that does not split
    into a non-empty bucket and key, since we only ever store values that
    encode_reference produced.
    """
    if not value:
        return None

    bucket, separator, key = value.partition(REFERENCE_SEPARATOR)
    if not separator:
        raise MalformedReferenceError(value, "missing separator")
    if not bucket:
        raise MalformedReferenceError(value, "empty bucket")
    if not key:
        raise MalformedReferenceError(value, "empty key")

    return ObjectReference(bucket=bucket, key=key)
