import itertools

import numpy as np
import pytest

from docscan.corners import (
    clamp_corners,
    corners_from_list,
    corners_to_list,
    default_corners,
    full_image_corners,
    is_degenerate,
    normalize_corners,
    quad_area,
    validate_corners,
)
from docscan.errors import DegenerateGeometryError

from .helpers import DOC_CORNERS


def test_normalize_is_independent_of_input_order():
    expected = DOC_CORNERS.astype(np.float32)
    for perm in itertools.permutations(range(4)):
        ordered = normalize_corners(DOC_CORNERS[list(perm)])
        np.testing.assert_array_equal(ordered, expected)


def test_normalize_rotated_square():
    # Diamond: top and bottom pairs split by y
    pts = [[50, 0], [100, 50], [50, 100], [0, 50]]
    ordered = normalize_corners(pts)
    # Equal y breaks by x, so (0, 50) joins the top pair
    assert ordered.tolist() == [[0, 50], [50, 0], [100, 50], [50, 100]]
    for perm in itertools.permutations(pts):
        np.testing.assert_array_equal(normalize_corners(list(perm)), ordered)


def test_normalize_accepts_opencv_contour_shape():
    contour = DOC_CORNERS.reshape(4, 1, 2)
    ordered = normalize_corners(contour)
    assert ordered.shape == (4, 2)
    assert ordered.dtype == np.float32


def test_normalize_rejects_wrong_point_count():
    with pytest.raises(ValueError):
        normalize_corners([[0, 0], [1, 0], [1, 1]])


def test_default_corners_inset_rectangle():
    corners = default_corners(400, 300)
    np.testing.assert_allclose(corners, [[40, 30], [360, 30], [360, 270], [40, 270]])
    assert not is_degenerate(corners)


def test_default_corners_tiny_image_still_valid():
    corners = default_corners(1, 1)
    assert not is_degenerate(corners)
    assert corners.min() >= 0 and corners.max() < 1


def test_full_image_corners_stay_in_bounds():
    corners = full_image_corners(400, 300)
    assert corners.tolist() == [[0, 0], [399, 0], [399, 299], [0, 299]]


@pytest.mark.parametrize(
    "points",
    [
        [[0, 0], [10, 0], [20, 0], [5, 5]],
        [[5, 5], [5, 5], [5, 5], [5, 5]],
        [[0, 0], [10, 10], [20, 20], [30, 30]],
    ],
)
def test_degenerate_quads(points):
    assert is_degenerate(points)


def test_non_degenerate_quad():
    assert not is_degenerate(DOC_CORNERS)
    assert quad_area([[0, 0], [10, 0], [10, 5], [0, 5]]) == pytest.approx(50.0)


def test_clamp_corners():
    clamped = clamp_corners([[-5, -5], [500, 0], [500, 400], [0, 400]], 400, 300)
    assert clamped.tolist() == [[0, 0], [399, 0], [399, 299], [0, 299]]


def test_validate_normalizes_and_clamps():
    corners = validate_corners([[500, 400], [-5, -5], [0, 400], [500, 0]], 400, 300)
    assert corners.tolist() == [[0, 0], [399, 0], [399, 299], [0, 299]]


def test_validate_rejects_collinear():
    with pytest.raises(DegenerateGeometryError):
        validate_corners([[0, 0], [100, 0], [200, 0], [50, 0]], 400, 300)


def test_validate_rejects_points_collapsed_by_clamping():
    # Everything lies right of the image, so all x clamp to 399
    with pytest.raises(DegenerateGeometryError):
        validate_corners([[500, 0], [600, 0], [600, 100], [500, 100]], 400, 300)


def test_list_round_trip():
    as_list = corners_to_list(DOC_CORNERS)
    assert as_list[0] == [60.0, 40.0]
    assert all(isinstance(v, float) for p in as_list for v in p)
    np.testing.assert_array_equal(corners_from_list(as_list), DOC_CORNERS.astype(np.float32))


def test_corners_from_list_requires_four_pairs():
    with pytest.raises(ValueError):
        corners_from_list([[0, 0], [1, 1]])
