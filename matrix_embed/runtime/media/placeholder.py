"""BlurHash placeholders for generated thumbnails.

Clients render the hash as a blurred preview while the real thumbnail is
loading.
"""

from __future__ import annotations

import io

import blurhash
from PIL import Image, UnidentifiedImageError

from .errors import EncodeError

COMPONENTS_X = 4
COMPONENTS_Y = 3

# A 4x3 hash only carries low frequencies, so sampling a small copy gives
# the same colours for a fraction of the work.
_SAMPLE_SIZE = (64, 64)


def encode_placeholder(image_bytes: bytes) -> str:
    """Return the 4x3 BlurHash of a still image (normally our JPEG thumbnail)."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as source:
            img = source.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise EncodeError(f"Failed to load image for placeholder: {exc}") from exc

    img.thumbnail(_SAMPLE_SIZE)
    if img.width == 0 or img.height == 0:
        raise EncodeError("Cannot generate placeholder for an empty image")

    try:
        return blurhash.encode(img, x_components=COMPONENTS_X, y_components=COMPONENTS_Y)
    except ValueError as exc:
        raise EncodeError(f"Failed to encode placeholder: {exc}") from exc
