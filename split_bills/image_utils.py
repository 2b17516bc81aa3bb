"""
Image helpers for split_bills
Shrinks receipt photos before they are sent for extraction
"""

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

MAX_SIZE_BYTES = 200 * 1024
TARGET_MAX_DIMENSION = 1024

FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
}


def optimize_image(data: bytes, content_type: str) -> Tuple[bytes, str]:
    """Return (bytes, mime type), re-encoding as JPEG when the upload is too large"""
    if len(data) <= MAX_SIZE_BYTES:
        return data, content_type

    # Unknown content types fall back to Pillow's own format detection
    formats = [FORMATS[content_type]] if content_type in FORMATS else None
    try:
        image = Image.open(io.BytesIO(data), formats=formats)
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ValueError("invalid_image") from exc

    if image.width > TARGET_MAX_DIMENSION or image.height > TARGET_MAX_DIMENSION:
        image.thumbnail((TARGET_MAX_DIMENSION, TARGET_MAX_DIMENSION), Image.Resampling.LANCZOS)

    # JPEG has no alpha channel or palette
    if image.mode != "RGB":
        image = image.convert("RGB")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG")
    return buffer.getvalue(), "image/jpeg"
