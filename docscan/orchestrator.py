"""Queue and per-item state machine for the scan pipeline.

Each uploaded image becomes a QueueItem that moves through
pending -> processing -> completed | error. One item is processed at a
time, oldest first: decode, detect, rectify, enhance. Completed items can
then be edited (corners, enhancement mode) without re-running detection.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .codec import decode_image, encode_image
from .config import ScannerConfig
from .corners import (
    clamp_corners,
    corners_to_list,
    default_corners,
    full_image_corners,
    validate_corners,
)
from .detector import BoundaryDetector, Detection
from .enhancer import EnhancementMode, ImageEnhancer
from .errors import ImageDecodeError, InvalidStateError, ItemNotFoundError
from .transformer import PerspectiveTransformer

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Processing failed"

# Stage progress; capped below 100 until the result is committed
PROGRESS_DECODED = 10
PROGRESS_DETECTED = 40
PROGRESS_RECTIFIED = 70
PROGRESS_ENHANCED = 90
PROGRESS_CAP = 99


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class QueueItem:
    """One uploaded document and everything derived from it."""

    item_id: str
    name: str
    source_bytes: bytes
    enhancement: EnhancementMode = EnhancementMode.ENHANCED
    status: ItemStatus = ItemStatus.PENDING
    progress: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    source_image: Optional[np.ndarray] = field(default=None, repr=False)
    corners: Optional[np.ndarray] = field(default=None, repr=False)
    initial_corners: Optional[np.ndarray] = field(default=None, repr=False)
    corners_detected: bool = False
    confidence: float = 0.0
    rectified_image: Optional[np.ndarray] = field(default=None, repr=False)
    enhanced_image: Optional[np.ndarray] = field(default=None, repr=False)
    error: Optional[str] = None
    corner_revision: int = field(default=0, repr=False)
    enhancement_revision: int = field(default=0, repr=False)

    @property
    def size(self) -> int:
        return len(self.source_bytes)

    @property
    def width(self) -> Optional[int]:
        return None if self.source_image is None else int(self.source_image.shape[1])

    @property
    def height(self) -> Optional[int]:
        return None if self.source_image is None else int(self.source_image.shape[0])

    @property
    def display_image(self) -> Optional[np.ndarray]:
        """Enhanced result, else the rectified image, else the source."""
        for image in (self.enhanced_image, self.rectified_image, self.source_image):
            if image is not None:
                return image
        return None

    def release(self):
        """Drop the image buffers held by this item."""
        self.source_image = None
        self.rectified_image = None
        self.enhanced_image = None


@dataclass
class _PipelineResult:
    source_image: np.ndarray
    corners: np.ndarray
    corners_detected: bool
    confidence: float
    rectified_image: np.ndarray
    enhanced_image: np.ndarray


class _Cancelled(Exception):
    """The item was removed while its pipeline was running."""


class ScanOrchestrator:
    """Drives queued images through detection, rectification and enhancement.

    The orchestrator is the only writer of item status and progress. All
    state changes happen under a lock; the image work itself runs outside
    it, and results are committed only if the item still exists and no
    newer edit of the same kind has been committed in the meantime.
    """

    def __init__(
        self,
        detector: Optional[BoundaryDetector] = None,
        transformer: Optional[PerspectiveTransformer] = None,
        enhancer: Optional[ImageEnhancer] = None,
        config: Optional[ScannerConfig] = None,
    ):
        config = config or ScannerConfig()
        self.detector = detector or BoundaryDetector.from_config(config.detection)
        self.transformer = transformer or PerspectiveTransformer()
        self.enhancer = enhancer or ImageEnhancer.from_config(config.enhancement)
        self.default_enhancement = EnhancementMode.parse(config.orchestrator.default_enhancement)
        self.fallback_inset = config.orchestrator.fallback_inset

        self._items: Dict[str, QueueItem] = {}
        self._selected_id: Optional[str] = None
        self._listeners: List[Callable[[QueueItem], None]] = []
        self._lock = threading.RLock()
        self._worker: Optional[threading.Thread] = None

    # Queue access

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    @property
    def items(self) -> List[QueueItem]:
        """All items in insertion order."""
        with self._lock:
            return list(self._items.values())

    def get(self, item_id: str) -> QueueItem:
        with self._lock:
            try:
                return self._items[item_id]
            except KeyError:
                raise ItemNotFoundError(item_id) from None

    def _with_status(self, status: ItemStatus) -> List[QueueItem]:
        with self._lock:
            return [item for item in self._items.values() if item.status is status]

    @property
    def pending_items(self) -> List[QueueItem]:
        return self._with_status(ItemStatus.PENDING)

    @property
    def completed_items(self) -> List[QueueItem]:
        return self._with_status(ItemStatus.COMPLETED)

    @property
    def processing_item(self) -> Optional[QueueItem]:
        processing = self._with_status(ItemStatus.PROCESSING)
        return processing[0] if processing else None

    def on_update(self, callback: Callable[[QueueItem], None]):
        """Register a callback invoked after every status or progress change."""
        self._listeners.append(callback)

    def _notify(self, item: QueueItem):
        for callback in list(self._listeners):
            try:
                callback(item)
            except Exception:
                logger.exception("Update listener failed for item %s", item.item_id)

    # Ingestion and lifecycle

    def add(self, image_bytes: bytes, name: str) -> QueueItem:
        """Queue an uploaded image as a new pending item."""
        item = QueueItem(
            item_id=uuid.uuid4().hex,
            name=name,
            source_bytes=bytes(image_bytes),
            enhancement=self.default_enhancement,
        )
        with self._lock:
            self._items[item.item_id] = item
        logger.info("Queued %s (%d bytes) as %s", name, item.size, item.item_id)
        self._notify(item)
        return item

    def add_many(self, files: Iterable[Tuple[str, bytes]]) -> List[QueueItem]:
        """Queue several (name, bytes) uploads, preserving their order."""
        return [self.add(data, name) for name, data in files]

    def remove(self, item_id: str) -> QueueItem:
        """Remove an item in any state and release its buffers.

        A pipeline still running for the item finishes, but its result is
        discarded.
        """
        with self._lock:
            item = self._items.pop(item_id, None)
            if item is None:
                raise ItemNotFoundError(item_id)
            if self._selected_id == item_id:
                self._selected_id = None
            was = item.status
            item.release()
        logger.info("Removed %s (%s, was %s)", item.name, item_id, was.value)
        return item

    def retry(self, item_id: str) -> QueueItem:
        """Send a failed item back to the pending state."""
        with self._lock:
            item = self.get(item_id)
            if item.status is not ItemStatus.ERROR:
                raise InvalidStateError(
                    f"Only failed items can be retried; {item.name} is {item.status.value}"
                )
            item.status = ItemStatus.PENDING
            item.progress = 0
            item.error = None
            item.updated_at = _now()
        logger.info("Retrying %s", item.name)
        self._notify(item)
        return item

    # Processing

    def process_next(self) -> Optional[QueueItem]:
        """Process the oldest pending item if the processing slot is free.

        Returns:
            The item that was processed (completed, failed or removed
            meanwhile), or None if nothing was admitted.
        """
        with self._lock:
            if self.processing_item is not None:
                return None
            item = next(
                (i for i in self._items.values() if i.status is ItemStatus.PENDING), None
            )
            if item is None:
                return None
            item.status = ItemStatus.PROCESSING
            item.progress = 0
            item.error = None
            item.updated_at = _now()
            source_bytes, mode = item.source_bytes, item.enhancement

        logger.info("Processing %s (%s)", item.name, item.item_id)
        self._notify(item)

        try:
            result = self._run_pipeline(item, source_bytes, mode)
        except _Cancelled:
            logger.info("Discarding result for removed item %s", item.item_id)
            return item
        except ImageDecodeError as e:
            logger.warning("%s", e)
            self._fail(item, str(e))
            return item
        except Exception:
            logger.exception("Pipeline failed for %s (%s)", item.name, item.item_id)
            self._fail(item, GENERIC_ERROR)
            return item

        with self._lock:
            if self._items.get(item.item_id) is not item:
                logger.info("Discarding result for removed item %s", item.item_id)
                return item
            item.source_image = result.source_image
            item.corners = result.corners
            item.initial_corners = result.corners.copy()
            item.corners_detected = result.corners_detected
            item.confidence = result.confidence
            item.rectified_image = result.rectified_image
            item.enhanced_image = result.enhanced_image
            item.status = ItemStatus.COMPLETED
            item.progress = 100
            item.updated_at = _now()
            if self._selected_id is None:
                self._selected_id = item.item_id

        logger.info(
            "Completed %s: %sx%s, boundary %s",
            item.name,
            result.rectified_image.shape[1],
            result.rectified_image.shape[0],
            f"detected ({result.confidence:.2f})" if result.corners_detected else "not found",
        )
        self._notify(item)
        return item

    def process_all(self) -> List[QueueItem]:
        """Process pending items one at a time until none are left."""
        processed = []
        while True:
            item = self.process_next()
            if item is None:
                return processed
            processed.append(item)

    def process_in_background(self) -> threading.Thread:
        """Drain the queue on a single worker thread.

        Returns the running worker; a second call while it is alive
        returns the same thread.
        """
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return self._worker
            self._worker = threading.Thread(
                target=self.process_all, name="docscan-worker", daemon=True
            )
            self._worker.start()
            return self._worker

    def _advance(self, item: QueueItem, progress: int):
        with self._lock:
            if self._items.get(item.item_id) is not item:
                raise _Cancelled()
            item.progress = max(item.progress, min(progress, PROGRESS_CAP))
        self._notify(item)

    def _run_pipeline(
        self, item: QueueItem, source_bytes: bytes, mode: EnhancementMode
    ) -> _PipelineResult:
        image = decode_image(source_bytes, item.name)
        height, width = image.shape[:2]
        self._advance(item, PROGRESS_DECODED)

        detection = self.detector.detect(image)
        if detection is None:
            logger.info("No boundary found in %s, using default corners", item.name)
            corners = default_corners(width, height, self.fallback_inset)
            confidence = 0.0
        else:
            corners = clamp_corners(detection.corners, width, height)
            confidence = detection.confidence
        self._advance(item, PROGRESS_DETECTED)

        rectified = self.transformer.transform(image, corners)
        self._advance(item, PROGRESS_RECTIFIED)

        enhanced = self.enhancer.enhance(rectified, mode)
        self._advance(item, PROGRESS_ENHANCED)

        return _PipelineResult(
            source_image=image,
            corners=corners,
            corners_detected=detection is not None,
            confidence=confidence,
            rectified_image=rectified,
            enhanced_image=enhanced,
        )

    def _fail(self, item: QueueItem, message: str):
        with self._lock:
            if self._items.get(item.item_id) is not item:
                return
            item.status = ItemStatus.ERROR
            item.error = message
            item.release()
            item.updated_at = _now()
        self._notify(item)

    # Edits on completed items

    def _require_completed(self, item_id: str) -> QueueItem:
        item = self.get(item_id)
        if item.status is not ItemStatus.COMPLETED:
            raise InvalidStateError(
                f"{item.name} is {item.status.value}; only completed items can be edited"
            )
        return item

    def update_corners(self, item_id: str, corners) -> QueueItem:
        """Re-rectify a completed item with new corners.

        Detection is not re-run and status/progress stay as they are.

        Raises:
            DegenerateGeometryError: If the corners enclose no area. The
                previous corners and images are kept.
        """
        item, _ = self._commit_corners(item_id, corners)
        return item

    def _commit_corners(
        self, item_id: str, corners, detection: Optional[Detection] = None
    ) -> Tuple[QueueItem, bool]:
        """Rectify and enhance with new corners.

        Returns the item and whether the result was committed; a newer
        corner edit or removal of the item discards it.
        """
        with self._lock:
            item = self._require_completed(item_id)
            ordered = validate_corners(corners, item.width, item.height)
            item.corner_revision += 1
            revision = item.corner_revision
            source, mode = item.source_image, item.enhancement

        rectified = self.transformer.transform(source, ordered)
        enhanced = self.enhancer.enhance(rectified, mode)

        with self._lock:
            if self._items.get(item_id) is not item or item.corner_revision != revision:
                logger.debug("Dropping superseded corner edit for %s", item_id)
                return item, False
            if item.enhancement is not mode:
                enhanced = self.enhancer.enhance(rectified, item.enhancement)
            item.corners = ordered
            item.rectified_image = rectified
            item.enhanced_image = enhanced
            if detection is not None:
                item.corners_detected = True
                item.confidence = detection.confidence
            item.updated_at = _now()

        logger.debug("Corners for %s set to %s", item.name, corners_to_list(ordered))
        self._notify(item)
        return item, True

    def set_enhancement(self, item_id: str, mode) -> QueueItem:
        """Switch the enhancement mode of a completed item."""
        mode = EnhancementMode.parse(mode)
        with self._lock:
            item = self._require_completed(item_id)
            item.enhancement_revision += 1
            revision = item.enhancement_revision
            rectified = item.rectified_image
            item.enhancement = mode

        enhanced = self.enhancer.enhance(rectified, mode)

        with self._lock:
            if (
                self._items.get(item_id) is not item
                or item.enhancement_revision != revision
                or item.rectified_image is not rectified
            ):
                logger.debug("Dropping superseded enhancement for %s", item_id)
                return item
            item.enhanced_image = enhanced
            item.updated_at = _now()

        self._notify(item)
        return item

    def redetect(self, item_id: str) -> bool:
        """Run boundary detection again on a completed item.

        Returns:
            True if a boundary was found and applied; otherwise the item
            is left unchanged.
        """
        item = self._require_completed(item_id)
        detection = self.detector.detect(item.source_image)
        if detection is None:
            logger.info("Auto-detect found no boundary in %s", item.name)
            return False

        _, committed = self._commit_corners(item_id, detection.corners, detection)
        return committed

    def reset_corners(self, item_id: str, full_image: bool = False) -> QueueItem:
        """Restore the corners found at processing time, or the full frame."""
        item = self._require_completed(item_id)
        if full_image:
            corners = full_image_corners(item.width, item.height)
        else:
            corners = item.initial_corners
        return self.update_corners(item_id, corners)

    # Selection and navigation

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def selected_item(self) -> Optional[QueueItem]:
        with self._lock:
            if self._selected_id is None:
                return None
            return self._items.get(self._selected_id)

    def select(self, item_id: Optional[str]):
        """Make a completed item the active one (None clears it)."""
        with self._lock:
            if item_id is not None:
                self._require_completed(item_id)
            self._selected_id = item_id

    def navigate(self, direction: str) -> Optional[QueueItem]:
        """Move the selection to the previous or next completed item.

        Args:
            direction: "prev" or "next".

        Returns:
            The selected item after moving (unchanged at either end).
        """
        if direction not in ("prev", "next"):
            raise ValueError(f"direction must be 'prev' or 'next', got {direction!r}")

        with self._lock:
            completed = self.completed_items
            if not completed:
                return None
            ids = [item.item_id for item in completed]
            if self._selected_id not in ids:
                self._selected_id = ids[0]
                return completed[0]

            index = ids.index(self._selected_id)
            index = index - 1 if direction == "prev" else index + 1
            index = max(0, min(index, len(ids) - 1))
            self._selected_id = ids[index]
            return completed[index]

    def position(self, item_id: Optional[str] = None) -> Tuple[int, int]:
        """1-based position of an item among completed items, and their count."""
        item_id = item_id or self._selected_id
        ids = [item.item_id for item in self.completed_items]
        index = ids.index(item_id) + 1 if item_id in ids else 0
        return index, len(ids)

    # Export and hand-off

    def export(self, item_id: str, fmt: str = "png") -> bytes:
        """Encode the current display image of a completed item."""
        item = self._require_completed(item_id)
        return encode_image(item.display_image, fmt)

    def save(self, item_id: str, store) -> Dict[str, Any]:
        """Hand a finished document to a store and drop it from the queue.

        Args:
            item_id: Completed item to save.
            store: Object with a save_document(...) method (see
                database.DocumentStore).

        Returns:
            The record returned by the store.
        """
        item = self._require_completed(item_id)
        record = store.save_document(
            document_id=item.item_id,
            processed_bytes=encode_image(item.display_image, "png"),
            original_bytes=item.source_bytes,
            corners=corners_to_list(item.corners),
            enhancement=item.enhancement.value,
            file_name=item.name,
            file_size=item.size,
            created_at=item.created_at.isoformat(),
        )
        logger.info("Saved %s as document %s", item.name, item.item_id)
        self.remove(item_id)
        return record
