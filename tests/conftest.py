import numpy as np
import pytest

from docscan import ScanOrchestrator

from .helpers import draw_document, encode_png


@pytest.fixture
def document_image():
    return draw_document()


@pytest.fixture
def blank_image():
    return np.full((300, 400, 3), 128, np.uint8)


@pytest.fixture
def document_bytes(document_image):
    return encode_png(document_image)


@pytest.fixture
def blank_bytes(blank_image):
    return encode_png(blank_image)


@pytest.fixture
def corrupt_bytes():
    return b"definitely not an image"


@pytest.fixture
def orchestrator():
    return ScanOrchestrator()
