"""Screenshot encoding for inline data-URI image parts."""

from __future__ import annotations

import base64
import io

from PIL import Image, UnidentifiedImageError

DEFAULT_JPEG_QUALITY = 0.7


def encode_jpeg(image: bytes, quality: float = DEFAULT_JPEG_QUALITY) -> bytes:
    """Re-encode arbitrary image bytes (PNG, HEIC-decoded, JPEG...) as JPEG.

    Args:
        image: Raw image file bytes.
        quality: Compression quality in (0, 1].

    Raises:
        ValueError: If *image* cannot be decoded or *quality* is out of range.
    """
    if not 0.0 < quality <= 1.0:
        raise ValueError(f"quality must be in (0, 1], got {quality}")
    try:
        with Image.open(io.BytesIO(image)) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=round(quality * 100))
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unreadable screenshot data: {exc}") from exc
    return out.getvalue()


def jpeg_data_uri(jpeg: bytes) -> str:
    """Return ``data:image/jpeg;base64,...`` for already-encoded JPEG bytes."""
    return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")


def image_to_data_uri(image: bytes, quality: float = DEFAULT_JPEG_QUALITY) -> str:
    """Encode *image* as JPEG and return it as an inline data URI."""
    return jpeg_data_uri(encode_jpeg(image, quality))
