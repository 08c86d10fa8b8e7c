"""Corner set helpers: canonical ordering, defaults and validation.

A corner set is a float32 array of shape (4, 2) holding points in source
image pixel coordinates, ordered top-left, top-right, bottom-right,
bottom-left.
"""

import itertools
from typing import List, Sequence, Tuple

import numpy as np

from .errors import DegenerateGeometryError

# Below this many square pixels a triangle or quad is treated as flat
MIN_AREA = 1e-6


def normalize_corners(points) -> np.ndarray:
    """Order 4 points consistently: TL, TR, BR, BL.

    Points are sorted by y; the upper two become TL/TR (by x) and the
    lower two become BR/BL (larger x first).

    Args:
        points: Any 4 points, as an array-like of shape (4, 2) or (4, 1, 2).

    Returns:
        Ordered float32 array of shape (4, 2).
    """
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 2)
    if pts.shape != (4, 2):
        raise ValueError(f"Expected 4 points, got array of shape {np.shape(points)}")

    # lexsort keys: last is primary. Ties fall back to x so any input
    # permutation of the same points gives the same order.
    by_y = pts[np.lexsort((pts[:, 0], pts[:, 1]))]
    top = by_y[:2][np.argsort(by_y[:2, 0], kind="stable")]
    bottom = by_y[2:][np.argsort(by_y[2:, 0], kind="stable")]

    return np.array([top[0], top[1], bottom[1], bottom[0]], dtype=np.float32)


def default_corners(width: int, height: int, inset: float = 0.1) -> np.ndarray:
    """Inset rectangle used when no boundary was detected.

    Args:
        width: Image width.
        height: Image height.
        inset: Margin as a fraction of each dimension.

    Returns:
        Corner set at inset / (1 - inset) of the image size.
    """
    left, right = width * inset, width * (1 - inset)
    top, bottom = height * inset, height * (1 - inset)
    return np.array(
        [[left, top], [right, top], [right, bottom], [left, bottom]],
        dtype=np.float32,
    )


def full_image_corners(width: int, height: int) -> np.ndarray:
    """Corner set covering the whole image."""
    right = max(width - 1, 0)
    bottom = max(height - 1, 0)
    return np.array(
        [[0, 0], [right, 0], [right, bottom], [0, bottom]],
        dtype=np.float32,
    )


def clamp_corners(corners, width: int, height: int) -> np.ndarray:
    """Clip corner coordinates into the image bounds."""
    pts = np.asarray(corners, dtype=np.float32).reshape(4, 2).copy()
    pts[:, 0] = np.clip(pts[:, 0], 0, max(width - 1, 0))
    pts[:, 1] = np.clip(pts[:, 1], 0, max(height - 1, 0))
    return pts


def quad_area(corners) -> float:
    """Shoelace area of the quadrilateral in the given point order."""
    pts = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    x, y = pts[:, 0], pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def _triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    return float(abs((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])) / 2.0)


def is_degenerate(corners) -> bool:
    """Check whether the corners enclose no area or have 3 collinear points."""
    pts = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    if not np.all(np.isfinite(pts)):
        return True
    if quad_area(pts) < MIN_AREA:
        return True
    for a, b, c in itertools.combinations(pts, 3):
        if _triangle_area(a, b, c) < MIN_AREA:
            return True
    return False


def validate_corners(corners, width: int, height: int) -> np.ndarray:
    """Normalize, clamp and check a user supplied corner set.

    Args:
        corners: 4 points in any order.
        width: Source image width.
        height: Source image height.

    Returns:
        Canonical corner set inside the image bounds.

    Raises:
        DegenerateGeometryError: If the corners do not form a usable quad.
    """
    try:
        ordered = normalize_corners(corners)
    except ValueError as e:
        raise DegenerateGeometryError(str(e)) from e

    ordered = clamp_corners(ordered, width, height)
    if is_degenerate(ordered):
        raise DegenerateGeometryError(
            f"Corners {corners_to_list(ordered)} do not form a quadrilateral"
        )
    return ordered


def corners_to_list(corners) -> List[List[float]]:
    """Convert a corner array to [[x, y], ...] with plain floats."""
    pts = np.asarray(corners, dtype=np.float32).reshape(-1, 2)
    return [[float(x), float(y)] for x, y in pts]


def corners_from_list(points: Sequence[Sequence[float]]) -> np.ndarray:
    """Inverse of corners_to_list; does not reorder."""
    pts = np.asarray(points, dtype=np.float32)
    if pts.shape != (4, 2):
        raise ValueError(f"Expected 4 [x, y] pairs, got shape {pts.shape}")
    return pts


def corner_labels() -> Tuple[str, str, str, str]:
    """Display names for the canonical corner order."""
    return ("Top-Left", "Top-Right", "Bottom-Right", "Bottom-Left")
