import cv2
import numpy as np

# Slightly skewed page inside a 400x300 photo, TL, TR, BR, BL
DOC_CORNERS = np.array([[60, 40], [340, 60], [320, 260], [80, 250]], dtype=np.int32)


def draw_document(width=400, height=300, corners=DOC_CORNERS, background=30, paper=235):
    """Bright quadrilateral on a dark background."""
    image = np.full((height, width, 3), background, np.uint8)
    cv2.fillPoly(image, [np.asarray(corners, dtype=np.int32)], (paper, paper, paper))
    return image


def encode_png(image):
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


class CountingDetector:
    """Wraps a detector and counts detect() calls."""

    def __init__(self, inner, before=None):
        self.inner = inner
        self.calls = 0
        self.before = before

    def detect(self, image):
        self.calls += 1
        if self.before is not None:
            self.before(self.calls)
        return self.inner.detect(image)
