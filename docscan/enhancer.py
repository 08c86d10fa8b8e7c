"""Post-processing filters for rectified document images."""

from enum import Enum
from typing import Union

import cv2
import numpy as np

from .config import EnhancementConfig
from .detector import to_gray


class EnhancementMode(str, Enum):
    ORIGINAL = "original"
    ENHANCED = "enhanced"
    GRAYSCALE = "grayscale"
    BW = "bw"

    @classmethod
    def parse(cls, value: Union["EnhancementMode", str]) -> "EnhancementMode":
        """Accept a mode or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown enhancement mode {value!r}; expected one of {valid}") from None

    @property
    def label(self) -> str:
        return {
            EnhancementMode.ORIGINAL: "Original",
            EnhancementMode.ENHANCED: "Enhanced",
            EnhancementMode.GRAYSCALE: "Grayscale",
            EnhancementMode.BW: "Black & White",
        }[self]


def to_bgr(image: np.ndarray) -> np.ndarray:
    """Promote gray or BGRA images to 3-channel BGR."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    return image


class ImageEnhancer:
    """Applies one of the enhancement modes to a rectified image.

    Each call is a pure function of (image, mode): the input is never
    modified and the same input always yields the same pixels.
    """

    def __init__(
        self,
        clip_limit: float = 2.0,
        tile_grid: int = 8,
        block_size: int = 11,
        offset: int = 2,
    ):
        self.clip_limit = clip_limit
        self.tile_grid = tile_grid
        self.block_size = block_size
        self.offset = offset

    @classmethod
    def from_config(cls, config: EnhancementConfig) -> "ImageEnhancer":
        return cls(
            clip_limit=config.clahe_clip_limit,
            tile_grid=config.clahe_tile_grid,
            block_size=config.threshold_block_size,
            offset=config.threshold_offset,
        )

    def enhance(self, image: np.ndarray, mode: Union[EnhancementMode, str]) -> np.ndarray:
        mode = EnhancementMode.parse(mode)

        if mode is EnhancementMode.ORIGINAL:
            return image.copy()
        if mode is EnhancementMode.ENHANCED:
            return self.equalize_luminance(image)
        if mode is EnhancementMode.GRAYSCALE:
            return to_gray(image).copy()
        return self.binarize(image)

    def equalize_luminance(self, image: np.ndarray) -> np.ndarray:
        """CLAHE on the L channel of LAB, leaving color balance alone."""
        lab = cv2.cvtColor(to_bgr(image), cv2.COLOR_BGR2LAB)
        l, a, b = cv2.split(lab)

        clahe = cv2.createCLAHE(
            clipLimit=self.clip_limit,
            tileGridSize=(self.tile_grid, self.tile_grid),
        )
        l = clahe.apply(l)

        return cv2.cvtColor(cv2.merge((l, a, b)), cv2.COLOR_LAB2BGR)

    def binarize(self, image: np.ndarray) -> np.ndarray:
        """Gaussian-weighted adaptive threshold for uneven lighting."""
        return cv2.adaptiveThreshold(
            to_gray(image), 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY, self.block_size, self.offset
        )


_default_enhancer = ImageEnhancer()


def enhance(image: np.ndarray, mode: Union[EnhancementMode, str]) -> np.ndarray:
    """Apply an enhancement mode with the default parameters."""
    return _default_enhancer.enhance(image, mode)
