"""Perspective rectification of a document quadrilateral."""

import logging
from typing import Tuple

import cv2
import numpy as np

from .corners import is_degenerate, normalize_corners
from .errors import DegenerateGeometryError

logger = logging.getLogger(__name__)


class PerspectiveTransformer:
    """Warps a document quadrilateral onto a flat rectangle.

    Given 4 corner points, the output keeps the longer of each pair of
    opposite edges, so mild keystoning from an oblique photo does not
    shrink the page.
    """

    def _prepare(self, corners) -> np.ndarray:
        ordered = normalize_corners(corners)
        if is_degenerate(ordered):
            raise DegenerateGeometryError(
                f"Cannot rectify degenerate quadrilateral {ordered.tolist()}"
            )
        return ordered

    def compute_output_dimensions(self, corners) -> Tuple[int, int]:
        """Compute output dimensions from the corner edge lengths.

        Args:
            corners: Array of 4 corner points.

        Returns:
            Tuple of (width, height), each rounded and at least 1.
        """
        tl, tr, br, bl = normalize_corners(corners)

        width = max(np.linalg.norm(tr - tl), np.linalg.norm(br - bl))
        height = max(np.linalg.norm(bl - tl), np.linalg.norm(br - tr))

        return max(int(round(width)), 1), max(int(round(height)), 1)

    def get_transformation_matrix(self, corners) -> Tuple[np.ndarray, Tuple[int, int]]:
        """Get the homography without applying it.

        Args:
            corners: Array of 4 corner points.

        Returns:
            Tuple of (3x3 transformation matrix, (width, height)).

        Raises:
            DegenerateGeometryError: If the corners enclose no area.
        """
        ordered = self._prepare(corners)
        width, height = self.compute_output_dimensions(ordered)

        dst_pts = np.array([
            [0, 0],
            [width, 0],
            [width, height],
            [0, height],
        ], dtype=np.float32)

        matrix = cv2.getPerspectiveTransform(ordered, dst_pts)
        return matrix, (width, height)

    def transform(self, image: np.ndarray, corners) -> np.ndarray:
        """Apply the perspective correction.

        Args:
            image: Source image.
            corners: Array of 4 corner points in source coordinates.

        Returns:
            New image of the computed target size.

        Raises:
            DegenerateGeometryError: If the corners enclose no area.
        """
        matrix, (width, height) = self.get_transformation_matrix(corners)

        logger.debug(
            "Rectifying %sx%s source to %sx%s",
            image.shape[1], image.shape[0], width, height,
        )
        return cv2.warpPerspective(
            image, matrix, (width, height),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0,
        )
