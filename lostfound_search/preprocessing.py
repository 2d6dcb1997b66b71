"""
Image loading and normalization for feature extraction.

Every image that enters the engine goes through load_image(), which accepts
raw bytes, binary file objects, filesystem paths, data URLs and http(s)
URLs, and always returns an RGBA uint8 array. Decoding is done with OpenCV
so that alpha channels survive and the transparency rules of the color
extractor can be applied.
"""

import base64
import binascii
import io
import logging
import os
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np
import requests

from .errors import ImageLoadError, UnsupportedSourceError

logger = logging.getLogger(__name__)

# Working resolution used for color sampling (pixels per side).
WORKING_SIZE = int(os.environ.get("WORKING_SIZE", "100"))

# Seconds to wait when an image has to be downloaded.
IMAGE_FETCH_TIMEOUT = float(os.environ.get("IMAGE_FETCH_TIMEOUT", "10"))

ImageSource = Union[bytes, bytearray, memoryview, str, Path, io.IOBase, np.ndarray]


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 RGBA format."""
    if image_np.dtype != np.uint8:
        if image_np.dtype == np.uint16:
            image_np = (image_np / 257).astype(np.uint8)
        elif image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        return cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGBA)
    if image_np.ndim == 3 and image_np.shape[2] == 3:
        return cv2.cvtColor(image_np, cv2.COLOR_RGB2RGBA)
    if image_np.ndim == 3 and image_np.shape[2] == 4:
        return image_np
    raise ImageLoadError(f"Unsupported pixel layout {image_np.shape}")


def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes (PNG, JPEG, WebP, BMP, ...) into RGBA.

    Raises:
        ImageLoadError: If the bytes are empty or not a decodable image.
    """
    if not data:
        raise ImageLoadError("Image data is empty")

    buffer = np.frombuffer(data, dtype=np.uint8)
    try:
        decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise ImageLoadError(f"Failed to decode image: {e}") from e

    if decoded is None or decoded.size == 0:
        raise ImageLoadError("Failed to load image: data is not a supported image format")

    # OpenCV hands back BGR(A); the rest of the pipeline works in RGB(A)
    if decoded.ndim == 3 and decoded.shape[2] == 3:
        decoded = cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB)
    elif decoded.ndim == 3 and decoded.shape[2] == 4:
        decoded = cv2.cvtColor(decoded, cv2.COLOR_BGRA2RGBA)

    return normalize_image(decoded)


def read_source_bytes(source: ImageSource,
                      timeout: Optional[float] = None) -> bytes:
    """
    Resolve an image source to its encoded bytes.

    Raises:
        ImageLoadError: If the location cannot be read or downloaded.
        UnsupportedSourceError: If the source type is not understood.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)

    if isinstance(source, Path):
        return _read_file(source)

    if isinstance(source, str):
        if source.startswith("data:"):
            return _decode_data_url(source)
        if source.startswith(("http://", "https://")):
            return _download(source, timeout)
        return _read_file(Path(source))

    if hasattr(source, "read"):
        data = source.read()
        if isinstance(data, str):
            raise UnsupportedSourceError("File object must be opened in binary mode")
        return bytes(data)

    raise UnsupportedSourceError(
        f"Unsupported image source of type {type(source).__name__}"
    )


def load_image(source: ImageSource, timeout: Optional[float] = None) -> np.ndarray:
    """
    Load an image from any supported source as an RGBA uint8 array.

    Args:
        source: Encoded bytes, a binary file object, a path, a data URL,
            an http(s) URL, or an already-decoded pixel array.
        timeout: Download timeout in seconds for URL sources.

    Returns:
        Array of shape (H, W, 4), dtype uint8.

    Raises:
        ImageLoadError: Corrupt or non-image data, unreadable file,
            failed download.
        UnsupportedSourceError: Input is none of the above.
    """
    if isinstance(source, np.ndarray):
        if source.size == 0:
            raise ImageLoadError("Pixel buffer is empty")
        return normalize_image(source)

    data = read_source_bytes(source, timeout)
    image = decode_image_bytes(data)
    logger.debug(f"Loaded image {image.shape[1]}x{image.shape[0]}")
    return image


def resize_to_working(image_np: np.ndarray, size: int = WORKING_SIZE) -> np.ndarray:
    """Resample the image to a fixed size x size working resolution."""
    if image_np.shape[0] == size and image_np.shape[1] == size:
        return image_np
    return cv2.resize(image_np, (size, size), interpolation=cv2.INTER_AREA)


def to_gray(image_np: np.ndarray) -> np.ndarray:
    """Luminance channel (0.299 R + 0.587 G + 0.114 B)."""
    if image_np.ndim == 2:
        return image_np
    if image_np.shape[2] == 4:
        return cv2.cvtColor(image_np, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image_np, cv2.COLOR_RGB2GRAY)


def alpha_mask(image_np: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Boolean mask of pixels that are opaque enough to analyze."""
    if image_np.ndim == 3 and image_np.shape[2] == 4:
        return image_np[:, :, 3] >= threshold
    return np.ones(image_np.shape[:2], dtype=bool)


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise ImageLoadError(f"Could not read image file {path}: {e}") from e


def _decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if not payload:
        raise ImageLoadError("Data URL has no payload")
    if ";base64" not in header:
        raise ImageLoadError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(f"Invalid base64 in data URL: {e}") from e


def _download(url: str, timeout: Optional[float]) -> bytes:
    timeout = timeout or IMAGE_FETCH_TIMEOUT
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ImageLoadError(f"Failed to download image from {url}: {e}") from e
    return response.content
