"""Document boundary detection."""

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from .config import DetectionConfig
from .corners import normalize_corners

logger = logging.getLogger(__name__)


@dataclass
class Detection:
    """A detected document boundary.

    Attributes:
        corners: Canonical corner set (TL, TR, BR, BL), float32 (4, 2).
        confidence: Area-based score in [0, 1].
        area: Contour area in square pixels.
    """

    corners: np.ndarray
    confidence: float
    area: float


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert a BGR, BGRA or gray image to a single channel."""
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


class BoundaryDetector:
    """Finds the most likely document quadrilateral in a photo.

    Uses Canny edges on a blurred gray image, dilates them to close
    gaps and keeps the largest external contour that approximates to
    four vertices. Not finding a boundary is a normal outcome, reported
    as None.
    """

    def __init__(
        self,
        canny_low: int = 75,
        canny_high: int = 200,
        blur_kernel: int = 5,
        dilate_kernel: int = 5,
        min_area_ratio: float = 0.1,
        contour_epsilon: float = 0.02,
    ):
        """Initialize the boundary detector.

        Args:
            canny_low: Lower hysteresis threshold for Canny.
            canny_high: Upper hysteresis threshold for Canny.
            blur_kernel: Side of the Gaussian blur kernel (odd).
            dilate_kernel: Side of the square dilation element.
            min_area_ratio: Minimum contour area as ratio of image area.
            contour_epsilon: Polygon approximation tolerance as a
                fraction of the contour perimeter.
        """
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.blur_kernel = blur_kernel
        self.dilate_kernel = dilate_kernel
        self.min_area_ratio = min_area_ratio
        self.contour_epsilon = contour_epsilon

    @classmethod
    def from_config(cls, config: DetectionConfig) -> "BoundaryDetector":
        return cls(
            canny_low=config.canny_low,
            canny_high=config.canny_high,
            blur_kernel=config.blur_kernel,
            dilate_kernel=config.dilate_kernel,
            min_area_ratio=config.min_area_ratio,
            contour_epsilon=config.contour_epsilon,
        )

    def detect(self, image: np.ndarray) -> Optional[Detection]:
        """Detect the document boundary.

        Args:
            image: Input image (BGR, BGRA or gray).

        Returns:
            Detection with normalized corners, or None if no
            quadrilateral candidate was found.
        """
        if image is None or image.size == 0:
            return None

        try:
            edges = self.detect_edges(image)
            return self._find_best_quadrilateral(image, edges)
        except cv2.error:
            logger.exception("Boundary detection failed on %sx%s image", image.shape[1], image.shape[0])
            return None

    def detect_edges(self, image: np.ndarray) -> np.ndarray:
        """Blurred Canny edge map, dilated to close small gaps."""
        gray = to_gray(image)
        k = self.blur_kernel
        blurred = cv2.GaussianBlur(gray, (k, k), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)

        kernel = np.ones((self.dilate_kernel, self.dilate_kernel), np.uint8)
        return cv2.dilate(edges, kernel)

    def _find_best_quadrilateral(
        self, image: np.ndarray, edges: np.ndarray
    ) -> Optional[Detection]:
        """Pick the largest 4-vertex external contour from an edge map."""
        contours, _ = cv2.findContours(
            edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )

        if not contours:
            return None

        image_area = float(image.shape[0] * image.shape[1])
        min_area = image_area * self.min_area_ratio

        best = None
        best_area = 0.0

        for contour in contours:
            area = cv2.contourArea(contour)

            if area < min_area:
                continue

            perimeter = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, self.contour_epsilon * perimeter, True)

            if len(approx) == 4 and area > best_area:
                best = approx
                best_area = area

        if best is None:
            logger.debug("No quadrilateral among %d contours", len(contours))
            return None

        confidence = min(best_area / image_area * 2, 1.0)
        corners = normalize_corners(best.reshape(4, 2))

        logger.debug(
            "Detected boundary area=%.0f (%.1f%% of image), confidence=%.2f",
            best_area,
            100 * best_area / image_area,
            confidence,
        )
        return Detection(corners=corners, confidence=float(confidence), area=float(best_area))
