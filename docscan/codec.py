"""Decoding uploaded bytes into rasters and encoding results for export."""

import cv2
import numpy as np

from .errors import ImageDecodeError

FORMATS = {
    "png": (".png", [cv2.IMWRITE_PNG_COMPRESSION, 3]),
    "jpeg": (".jpg", [cv2.IMWRITE_JPEG_QUALITY, 95]),
    "jpg": (".jpg", [cv2.IMWRITE_JPEG_QUALITY, 95]),
}


def decode_image(image_bytes: bytes, name: str = "image") -> np.ndarray:
    """Decode file bytes into a BGR image.

    Args:
        image_bytes: Raw file contents (PNG, JPEG, WebP, ...).
        name: File name, used in the error message.

    Returns:
        BGR uint8 array.

    Raises:
        ImageDecodeError: If the bytes are empty or not a readable image.
    """
    if not image_bytes:
        raise ImageDecodeError(f"Could not decode image '{name}': file is empty")

    nparr = np.frombuffer(image_bytes, np.uint8)
    try:
        image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"Could not decode image '{name}': {e}") from e

    if image is None or image.size == 0:
        raise ImageDecodeError(f"Could not decode image '{name}'")
    return image


def encode_image(image: np.ndarray, fmt: str = "png") -> bytes:
    """Encode an image (BGR or gray) to PNG or JPEG bytes."""
    try:
        ext, params = FORMATS[fmt.lower()]
    except KeyError:
        raise ValueError(f"Unsupported export format {fmt!r}") from None

    ok, buffer = cv2.imencode(ext, image, params)
    if not ok:
        raise ValueError(f"Could not encode {image.shape} image as {fmt}")
    return buffer.tobytes()
