"""Serialization of captured rasters to compressed image bytes.

Images inside the pipeline are OpenCV-style BGR arrays; Pillow does the
encoding so quality settings behave the same as in the upload tooling.
"""

import io
from collections.abc import Sequence

import cv2
import numpy as np
from PIL import Image

from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)

_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp"}
_CONTENT_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def _normalize_format(image_format: str) -> str:
    fmt = image_format.upper()
    if fmt == "JPG":
        fmt = "JPEG"
    if fmt not in _EXTENSIONS:
        raise ValueError(f"Unsupported image format: {image_format}")
    return fmt


def suggested_filename(image_format: str = "JPEG", stem: str = "receipt") -> str:
    """File name to hand to the upload collaborator, e.g. ``receipt.jpg``."""
    return f"{stem}{_EXTENSIONS[_normalize_format(image_format)]}"


def content_type(image_format: str = "JPEG") -> str:
    return _CONTENT_TYPES[_normalize_format(image_format)]


def _to_pil(image: np.ndarray) -> Image.Image:
    if image.ndim == 2:
        return Image.fromarray(image)
    if image.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGB))
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def encode(
    image: np.ndarray, image_format: str = "JPEG", quality: float = 0.95
) -> bytes:
    """Encode a BGR or grayscale image.

    Args:
        image: Image as a ``uint8`` numpy array.
        image_format: ``"JPEG"``, ``"PNG"`` or ``"WEBP"``.
        quality: Compression quality in ``(0, 1]``; ignored for PNG.

    Returns:
        The encoded bytes.

    Raises:
        ValueError: If the quality or format is not supported.
    """
    if not 0 < quality <= 1:
        raise ValueError(f"Quality must be in (0, 1]: {quality}")
    fmt = _normalize_format(image_format)

    buffer = io.BytesIO()
    options = {} if fmt == "PNG" else {"quality": round(quality * 100)}
    _to_pil(image).save(buffer, format=fmt, **options)
    data = buffer.getvalue()
    logger.debug("Encoded %s at quality %.2f: %d bytes", fmt, quality, len(data))
    return data


def encode_to_limit(
    image: np.ndarray,
    max_bytes: int,
    presets: Sequence[float] = (0.95, 0.9, 0.85, 0.8, 0.7),
    image_format: str = "JPEG",
) -> tuple[bytes, float]:
    """Encode with the first quality preset whose output fits ``max_bytes``.

    Presets are tried in order. If none fits, the smallest encoding is
    returned.

    Args:
        image: Image to encode.
        max_bytes: Size limit in bytes.
        presets: Quality values to try, best first.
        image_format: Output format.

    Returns:
        Tuple of (encoded bytes, quality used).

    Raises:
        ValueError: If ``presets`` is empty.
    """
    if not presets:
        raise ValueError("At least one quality preset is required")

    smallest: tuple[bytes, float] | None = None
    for quality in presets:
        data = encode(image, image_format, quality)
        if len(data) <= max_bytes:
            return data, quality
        if smallest is None or len(data) < len(smallest[0]):
            smallest = data, quality

    logger.warning(
        "No preset fits %d bytes, using quality %.2f (%d bytes)",
        max_bytes,
        smallest[1],
        len(smallest[0]),
    )
    return smallest


def decode(data: bytes) -> np.ndarray:
    """Decode image bytes into a BGR (or grayscale) array.

    Raises:
        ValueError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if img.mode not in ("L", "RGB"):
                img = img.convert("RGB")
            array = np.array(img)
    except (OSError, Image.DecompressionBombError) as exc:
        raise ValueError(f"Cannot decode image: {exc}") from exc

    if array.ndim == 2:
        return array
    return cv2.cvtColor(array, cv2.COLOR_RGB2BGR)
