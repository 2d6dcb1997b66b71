"""Shared test fixtures for lost-and-found image search tests."""

import cv2
import numpy as np
import pytest

from lostfound_search.fingerprint import compute_fingerprint
from lostfound_search.models import CatalogItem, ImageFeatures, ShapeFeatures


def encode_png(image: np.ndarray) -> bytes:
    """Encode an RGB or RGBA array as PNG bytes."""
    if image.ndim == 3 and image.shape[2] == 4:
        bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    elif image.ndim == 3:
        bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    else:
        bgr = image
    ok, buf = cv2.imencode(".png", bgr)
    assert ok
    return buf.tobytes()


@pytest.fixture
def png():
    """Factory fixture: array -> PNG bytes."""
    return encode_png


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def black_image():
    """A 120x120 pure black image."""
    return np.zeros((120, 120, 3), dtype=np.uint8)


@pytest.fixture
def textured_image():
    """Generate a 200x200 checkerboard."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 200
    for y in range(0, 200, 20):
        for x in range(0, 200, 20):
            if (x // 20 + y // 20) % 2 == 0:
                img[y:y+20, x:x+20] = [50, 50, 50]
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def transparent_image():
    """A 50x50 RGBA image with every pixel fully transparent."""
    img = np.zeros((50, 50, 4), dtype=np.uint8)
    img[:, :, 0] = 255
    return img


@pytest.fixture
def black_iphone():
    return CatalogItem(id="phone-1", title="Black iPhone", category="electronics",
                       description="Found near the library entrance")


@pytest.fixture
def red_scarf():
    return CatalogItem(id="scarf-1", title="Red Scarf", category="clothing",
                       description="Wool scarf left in the cafeteria")


@pytest.fixture
def make_features():
    """Factory fixture for ImageFeatures with the given labels."""
    def _make(labels, colors=None):
        flat = np.zeros((32, 32, 3), dtype=np.uint8)
        return ImageFeatures(
            dominant_colors=colors or [(0, 0, 0)],
            labels=list(labels),
            shape_features=ShapeFeatures(
                aspect_ratio=1.0, rectangularity=0.75, roundness=1.0,
                squareness=1.0, symmetry=1.0, compactness=0.5, complexity=0.0,
            ),
            fingerprint=compute_fingerprint(flat),
        )
    return _make
