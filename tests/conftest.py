"""Shared pytest fixtures."""
import pytest
from io import BytesIO
from PIL import Image
from fastapi.testclient import TestClient

from retrieval_gateway.app import app
from retrieval_gateway.gateway import ImageGateway, get_gateway
from retrieval_gateway.registry import StorageRegistry
from retrieval_gateway.storage import MemoryStorage


def _image_bytes(size=(100, 100), fmt="JPEG") -> bytes:
    """Encode a small patterned picture."""
    width, height = size
    img = Image.new("RGB", size, color="red")
    pixels = img.load()
    for i in range(width):
        for j in range(height):
            pixels[i, j] = (i % 255, j % 255, (i + j) % 255)
    output = BytesIO()
    img.save(output, fmt)
    return output.getvalue()


@pytest.fixture
def make_image_bytes():
    """Factory for encoded pictures: make_image_bytes(size=(w, h), fmt="PNG")."""
    return _image_bytes


@pytest.fixture
def sample_image_bytes():
    """A valid 100x100 JPEG."""
    return _image_bytes()


@pytest.fixture
def picture():
    """A decoded picture large enough to be indexed."""
    return Image.new("RGB", (32, 32), color="blue")


@pytest.fixture
def registry():
    """Empty in-memory registry."""
    registry = StorageRegistry(storage_factory=MemoryStorage, default_storage="default", auto_create_default=True)
    yield registry
    registry.close()


@pytest.fixture
def gateway(registry):
    return ImageGateway(registry)


@pytest.fixture
def test_client(gateway):
    """Create test client bound to an in-memory gateway."""
    app.dependency_overrides[get_gateway] = lambda: gateway
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
