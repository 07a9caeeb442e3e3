"""
Object key generation for uploaded videos.

Keys look like "landscape/3f9c...e1.mp4". The orientation prefix only
partitions the bucket (handy for lifecycle rules per orientation); the
128-bit random suffix is what makes keys unique.
"""

import logging
import secrets

from .errors import KeyGenerationError
from .models import Orientation

logger = logging.getLogger(__name__)

KEY_RANDOM_BYTES = 16
VIDEO_KEY_EXTENSION = "mp4"


def generate_video_key(orientation: Orientation) -> str:
    """Build "<orientation>/<32 hex chars>.mp4" from OS randomness."""
    try:
        random_hex = secrets.token_bytes(KEY_RANDOM_BYTES).hex()
    except (OSError, NotImplementedError) as e:
        logger.error("Entropy source failed", extra={"error": str(e)})
        raise KeyGenerationError(f"Failed to generate random key: {e}") from e

    return f"{orientation.value}/{random_hex}.{VIDEO_KEY_EXTENSION}"
