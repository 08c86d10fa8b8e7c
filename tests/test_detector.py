import cv2
import numpy as np
import pytest

from docscan.detector import BoundaryDetector, to_gray

from .helpers import DOC_CORNERS, draw_document


@pytest.fixture
def detector():
    return BoundaryDetector()


def test_detects_document_corners(detector, document_image):
    detection = detector.detect(document_image)

    assert detection is not None
    assert detection.corners.shape == (4, 2)
    # Dilation widens the edge band by a few pixels
    np.testing.assert_allclose(detection.corners, DOC_CORNERS, atol=8)


def test_confidence_from_area(detector, document_image):
    detection = detector.detect(document_image)
    image_area = document_image.shape[0] * document_image.shape[1]

    assert detection.confidence == pytest.approx(min(detection.area / image_area * 2, 1.0))
    assert 0.0 <= detection.confidence <= 1.0


def test_confidence_capped_at_one(detector):
    image = draw_document(corners=[[20, 15], [380, 20], [375, 280], [25, 285]])
    detection = detector.detect(image)

    assert detection is not None
    assert detection.confidence == 1.0


def test_blank_image_not_found(detector, blank_image):
    assert detector.detect(blank_image) is None


def test_small_shapes_are_ignored(detector):
    image = draw_document(corners=[[180, 130], [220, 130], [220, 170], [180, 170]])
    assert detector.detect(image) is None


def test_non_quadrilateral_is_ignored(detector):
    image = np.full((300, 400, 3), 30, np.uint8)
    cv2.circle(image, (200, 150), 120, (235, 235, 235), -1)
    assert detector.detect(image) is None


def test_picks_largest_quadrilateral(detector):
    image = np.full((400, 600, 3), 30, np.uint8)
    cv2.rectangle(image, (20, 20), (250, 380), (235, 235, 235), -1)
    cv2.rectangle(image, (300, 100), (560, 300), (235, 235, 235), -1)

    detection = detector.detect(image)

    assert detection is not None
    xs = detection.corners[:, 0]
    assert xs.max() < 270


@pytest.mark.parametrize("conversion", [cv2.COLOR_BGR2GRAY, cv2.COLOR_BGR2BGRA])
def test_accepts_gray_and_alpha_images(detector, document_image, conversion):
    converted = cv2.cvtColor(document_image, conversion)
    detection = detector.detect(converted)

    assert detection is not None
    np.testing.assert_allclose(detection.corners, DOC_CORNERS, atol=8)


def test_empty_image_not_found(detector):
    assert detector.detect(np.zeros((0, 0, 3), np.uint8)) is None


def test_does_not_modify_input(detector, document_image):
    before = document_image.copy()
    detector.detect(document_image)
    np.testing.assert_array_equal(document_image, before)


def test_to_gray_shapes(document_image):
    assert to_gray(document_image).shape == (300, 400)
    gray = to_gray(document_image)
    assert to_gray(gray) is gray
    assert to_gray(gray[:, :, None]).shape == (300, 400)
