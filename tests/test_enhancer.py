import cv2
import numpy as np
import pytest

from docscan.enhancer import EnhancementMode, ImageEnhancer, enhance


@pytest.fixture
def page():
    """Rectified page with faded text and a shadow gradient."""
    rng = np.random.default_rng(7)
    image = np.full((240, 320, 3), 200, np.uint8)
    gradient = np.linspace(0, 60, 320, dtype=np.float32)
    image = np.clip(image.astype(np.float32) - gradient[None, :, None], 0, 255).astype(np.uint8)
    for row in range(30, 220, 24):
        cv2.line(image, (20, row), (300, row), (120, 110, 100), 2)
    noise = rng.integers(0, 6, image.shape, dtype=np.uint8)
    return cv2.add(image, noise)


@pytest.mark.parametrize("mode", list(EnhancementMode))
def test_idempotent(page, mode):
    first = enhance(page, mode)
    second = enhance(page, mode)
    np.testing.assert_array_equal(first, second)


@pytest.mark.parametrize("mode", list(EnhancementMode))
def test_input_untouched(page, mode):
    before = page.copy()
    enhance(page, mode)
    np.testing.assert_array_equal(page, before)


def test_original_is_a_copy(page):
    result = enhance(page, EnhancementMode.ORIGINAL)
    assert result is not page
    np.testing.assert_array_equal(result, page)


def test_enhanced_keeps_color_layout(page):
    result = enhance(page, "enhanced")
    assert result.shape == page.shape
    assert result.dtype == np.uint8
    assert not np.array_equal(result, page)


def test_enhanced_promotes_gray_input(page):
    gray = cv2.cvtColor(page, cv2.COLOR_BGR2GRAY)
    assert enhance(gray, "enhanced").shape == page.shape


def test_grayscale_single_channel(page):
    result = enhance(page, "grayscale")
    assert result.shape == page.shape[:2]


def test_bw_is_binary(page):
    result = enhance(page, "bw")
    assert result.ndim == 2
    assert set(np.unique(result)).issubset({0, 255})
    assert (result == 0).any() and (result == 255).any()


def test_modes_are_independent(page):
    # Going through grayscale first gives the same bw result
    direct = enhance(page, "bw")
    via_gray = enhance(enhance(page, "grayscale"), "bw")
    np.testing.assert_array_equal(direct, via_gray)


def test_custom_parameters():
    enhancer = ImageEnhancer(block_size=31, offset=10)
    image = np.full((64, 64, 3), 180, np.uint8)
    result = enhancer.enhance(image, EnhancementMode.BW)
    # Flat input sits above its local mean minus the offset
    assert (result == 255).all()


def test_parse():
    assert EnhancementMode.parse("BW") is EnhancementMode.BW
    assert EnhancementMode.parse(EnhancementMode.GRAYSCALE) is EnhancementMode.GRAYSCALE
    with pytest.raises(ValueError):
        EnhancementMode.parse("sepia")


def test_labels():
    assert EnhancementMode.BW.label == "Black & White"
