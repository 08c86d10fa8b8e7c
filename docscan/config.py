"""Configuration for the document scanner.

Values come from environment variables so the same settings work for the
Streamlit app and for headless use. AWS settings keep the variable names
used by the storage layer (DYNAMODB_TABLE, S3_BUCKET, AWS_REGION, ...).
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENHANCEMENT_MODES = ("original", "enhanced", "grayscale", "bw")


@dataclass
class DetectionConfig:
    blur_kernel: int = 5
    canny_low: int = 75
    canny_high: int = 200
    dilate_kernel: int = 5
    min_area_ratio: float = 0.1
    contour_epsilon: float = 0.02


@dataclass
class EnhancementConfig:
    clahe_clip_limit: float = 2.0
    clahe_tile_grid: int = 8
    threshold_block_size: int = 11
    threshold_offset: int = 2


@dataclass
class OrchestratorConfig:
    default_enhancement: str = "enhanced"
    fallback_inset: float = 0.1


@dataclass
class StorageConfig:
    table_name: str = "DocumentScans"
    bucket_name: Optional[str] = None
    region_name: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key)


@dataclass
class ScannerConfig:
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    enhancement: EnhancementConfig = field(default_factory=EnhancementConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"


def _read(env: Mapping[str, str], key: str, cast: Callable[[str], T], default: T) -> T:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {key}: {raw!r}") from e


def _odd_kernel(key: str, value: int) -> int:
    if value < 1 or value % 2 == 0:
        raise ValueError(f"{key} must be a positive odd integer, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> ScannerConfig:
    """Build a ScannerConfig from environment variables.

    Args:
        env: Mapping to read from. Defaults to os.environ.

    Returns:
        Populated configuration; unset variables keep their defaults.

    Raises:
        ValueError: If a variable cannot be parsed or is out of range.
    """
    if env is None:
        env = os.environ

    base = DetectionConfig()
    detection = DetectionConfig(
        blur_kernel=_odd_kernel(
            "DOCSCAN_BLUR_KERNEL", _read(env, "DOCSCAN_BLUR_KERNEL", int, base.blur_kernel)
        ),
        canny_low=_read(env, "DOCSCAN_CANNY_LOW", int, base.canny_low),
        canny_high=_read(env, "DOCSCAN_CANNY_HIGH", int, base.canny_high),
        dilate_kernel=_read(env, "DOCSCAN_DILATE_KERNEL", int, base.dilate_kernel),
        min_area_ratio=_read(env, "DOCSCAN_MIN_AREA_RATIO", float, base.min_area_ratio),
        contour_epsilon=_read(env, "DOCSCAN_CONTOUR_EPSILON", float, base.contour_epsilon),
    )
    if detection.canny_low > detection.canny_high:
        raise ValueError("DOCSCAN_CANNY_LOW must not exceed DOCSCAN_CANNY_HIGH")

    base_enh = EnhancementConfig()
    enhancement = EnhancementConfig(
        clahe_clip_limit=_read(env, "DOCSCAN_CLAHE_CLIP_LIMIT", float, base_enh.clahe_clip_limit),
        clahe_tile_grid=_read(env, "DOCSCAN_CLAHE_TILE_GRID", int, base_enh.clahe_tile_grid),
        threshold_block_size=_odd_kernel(
            "DOCSCAN_THRESHOLD_BLOCK_SIZE",
            _read(env, "DOCSCAN_THRESHOLD_BLOCK_SIZE", int, base_enh.threshold_block_size),
        ),
        threshold_offset=_read(env, "DOCSCAN_THRESHOLD_OFFSET", int, base_enh.threshold_offset),
    )

    mode = env.get("DOCSCAN_DEFAULT_ENHANCEMENT") or OrchestratorConfig.default_enhancement
    if mode not in ENHANCEMENT_MODES:
        raise ValueError(
            f"DOCSCAN_DEFAULT_ENHANCEMENT must be one of {', '.join(ENHANCEMENT_MODES)}, got {mode!r}"
        )
    inset = _read(env, "DOCSCAN_FALLBACK_INSET", float, OrchestratorConfig.fallback_inset)
    if not 0 <= inset < 0.5:
        raise ValueError(f"DOCSCAN_FALLBACK_INSET must be in [0, 0.5), got {inset}")
    orchestrator = OrchestratorConfig(default_enhancement=mode, fallback_inset=inset)

    storage = StorageConfig(
        table_name=env.get("DYNAMODB_TABLE", StorageConfig.table_name),
        bucket_name=env.get("S3_BUCKET") or None,
        region_name=env.get("AWS_REGION", StorageConfig.region_name),
        aws_access_key_id=env.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=env.get("AWS_SECRET_ACCESS_KEY"),
    )

    config = ScannerConfig(
        detection=detection,
        enhancement=enhancement,
        orchestrator=orchestrator,
        storage=storage,
        log_level=env.get("DOCSCAN_LOG_LEVEL", "INFO").upper(),
    )
    logger.debug("Loaded scanner config: %s", config.detection)
    return config
