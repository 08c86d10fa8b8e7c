"""Exceptions raised by the scan pipeline and the orchestrator."""


class ScanError(Exception):
    """Base class for document scanner errors."""


class ImageDecodeError(ScanError):
    """Raised when uploaded bytes cannot be decoded into an image."""


class DegenerateGeometryError(ScanError, ValueError):
    """Raised when a corner set does not describe a usable quadrilateral."""


class InvalidStateError(ScanError):
    """Raised when an operation is not allowed in the item's current status."""


class ItemNotFoundError(ScanError, KeyError):
    """Raised when a queue item id is unknown."""

    def __str__(self):
        return f"No queue item with id {self.args[0]!r}" if self.args else "Unknown queue item"
