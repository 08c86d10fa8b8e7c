"""Document scanning: boundary detection, perspective correction and enhancement."""

from .config import ScannerConfig, load_config
from .corners import default_corners, normalize_corners, validate_corners
from .detector import BoundaryDetector, Detection
from .enhancer import EnhancementMode, ImageEnhancer, enhance
from .errors import (
    DegenerateGeometryError,
    ImageDecodeError,
    InvalidStateError,
    ItemNotFoundError,
    ScanError,
)
from .orchestrator import ItemStatus, QueueItem, ScanOrchestrator
from .transformer import PerspectiveTransformer

__version__ = "0.1.0"

__all__ = [
    "BoundaryDetector",
    "DegenerateGeometryError",
    "Detection",
    "EnhancementMode",
    "ImageDecodeError",
    "ImageEnhancer",
    "InvalidStateError",
    "ItemNotFoundError",
    "ItemStatus",
    "PerspectiveTransformer",
    "QueueItem",
    "ScanError",
    "ScanOrchestrator",
    "ScannerConfig",
    "default_corners",
    "enhance",
    "load_config",
    "normalize_corners",
    "validate_corners",
]
