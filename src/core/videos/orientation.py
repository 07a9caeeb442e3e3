"""
Aspect-ratio based orientation classifier.

Phones and cameras rarely produce exactly 16:9 (think 1920x1088 or
cropped exports), so we match against tolerance bands instead of exact
ratios. The tolerance is an absolute difference on width/height.
"""

from .models import Orientation, StreamGeometry

TARGET_WIDE = 16 / 9
TARGET_TALL = 9 / 16
TOLERANCE = 0.02


def ensure_disjoint_bands(wide: float, tall: float, tolerance: float) -> None:
    """
    Raise ValueError if a ratio could fall inside both tolerance bands.

    The classifier checks landscape before portrait. That order only
    matters if the bands overlap, so we refuse constants where they do
    rather than silently picking a winner.
    """
    if tolerance <= 0:
        raise ValueError("tolerance must be positive")
    if abs(wide - tall) < 2 * tolerance:
        raise ValueError(
            f"Tolerance bands overlap: |{wide:.4f} - {tall:.4f}| < 2 * {tolerance}"
        )


ensure_disjoint_bands(TARGET_WIDE, TARGET_TALL, TOLERANCE)


def classify_orientation(width: int, height: int) -> Orientation:
    """
    Map pixel dimensions to landscape, portrait or other.

    1920x1080 -> landscape, 1080x1920 -> portrait, 1000x1000 -> other.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Dimensions must be positive, got {width}x{height}")

    ratio = width / height

    if abs(ratio - TARGET_WIDE) < TOLERANCE:
        return Orientation.LANDSCAPE
    if abs(ratio - TARGET_TALL) < TOLERANCE:
        return Orientation.PORTRAIT
    return Orientation.OTHER


def classify_geometry(geometry: StreamGeometry) -> Orientation:
    return classify_orientation(geometry.width, geometry.height)
