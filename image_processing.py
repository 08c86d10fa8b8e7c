"""
Image conversion helpers shared by the app and the document store.
"""

import base64
import io
from typing import Tuple

import cv2
import numpy as np
from PIL import Image

from docscan.codec import decode_image


def cv2_to_pil(image: np.ndarray) -> Image.Image:
    """Convert an OpenCV image (BGR, BGRA or gray) to a PIL image."""
    if image.ndim == 2:
        return Image.fromarray(image)
    if image.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA))
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def pil_to_bytes(image: Image.Image, format: str = 'PNG') -> bytes:
    """Encode a PIL image to PNG or JPEG bytes."""
    buffer = io.BytesIO()
    if format.upper() == 'JPEG':
        # JPEG has no alpha channel
        if image.mode in ('RGBA', 'LA', 'P'):
            image = image.convert('RGB')
        image.save(buffer, format='JPEG', quality=95)
    else:
        image.save(buffer, format='PNG')
    return buffer.getvalue()


def bytes_to_base64(image_bytes: bytes) -> str:
    """Convert image bytes to base64 string."""
    return base64.b64encode(image_bytes).decode('utf-8')


def base64_to_bytes(base64_string: str) -> bytes:
    """Convert base64 string back to image bytes."""
    return base64.b64decode(base64_string)


def create_thumbnail(image: np.ndarray, max_size: Tuple[int, int] = (300, 300)) -> Image.Image:
    """
    Create a thumbnail of an OpenCV image.

    Args:
        image: BGR or gray image
        max_size: Maximum dimensions

    Returns:
        Thumbnail as a PIL image, aspect ratio preserved
    """
    thumbnail = cv2_to_pil(image)
    thumbnail.thumbnail(max_size, Image.Resampling.LANCZOS)
    return thumbnail


def thumbnail_bytes(image_bytes: bytes, max_size: Tuple[int, int] = (300, 300)) -> bytes:
    """
    Build a PNG thumbnail from encoded image bytes.

    Raises:
        ImageDecodeError: If the bytes are not an image
    """
    image = decode_image(image_bytes, name="thumbnail source")
    return pil_to_bytes(create_thumbnail(image, max_size))


def fit_to_width(image: np.ndarray, max_width: int = 800) -> Tuple[np.ndarray, float]:
    """
    Downscale an image for display.

    Returns:
        Tuple of (display image, scale factor applied)
    """
    height, width = image.shape[:2]
    if width <= max_width:
        return image, 1.0
    scale = max_width / width
    resized = cv2.resize(
        image, (max_width, max(int(round(height * scale)), 1)), interpolation=cv2.INTER_AREA
    )
    return resized, scale
