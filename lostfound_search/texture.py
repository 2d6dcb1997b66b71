"""
Texture heuristics for the richer extraction variant.

All five measures are computed on a 64x64 luminance thumbnail and mapped
to [0, 1]:
    coarseness      mid-frequency band energy (difference of Gaussians)
    contrast        luminance standard deviation
    directionality  concentration of gradient orientations
    roughness       high-frequency (Laplacian) energy
    regularity      strongest off-center autocorrelation peak

Flat surfaces score low on coarseness and roughness, so they get the
"smooth / plastic / metal / glass" labels; fabric-like surfaces score high.
"""

import logging
from typing import List

import cv2
import numpy as np

from .models import TextureFeatures
from .preprocessing import normalize_image, to_gray

logger = logging.getLogger(__name__)

TEXTURE_SIZE = 64
ORIENTATION_BINS = 18


def compute_texture_features(image_np: np.ndarray) -> TextureFeatures:
    """
    Compute texture heuristics for an image.

    Args:
        image_np: RGB or RGBA uint8 image.

    Returns:
        TextureFeatures. Falls back to neutral 0.5 values if OpenCV
        rejects the input.
    """
    try:
        image_np = normalize_image(image_np)
        gray = cv2.resize(to_gray(image_np), (TEXTURE_SIZE, TEXTURE_SIZE),
                          interpolation=cv2.INTER_AREA).astype(np.float32)

        fine = cv2.GaussianBlur(gray, (3, 3), 0)
        broad = cv2.GaussianBlur(gray, (9, 9), 0)
        coarseness = float(np.mean(np.abs(fine - broad))) / 12.0

        contrast = float(np.std(gray)) / 128.0

        laplacian = cv2.Laplacian(gray, cv2.CV_32F, ksize=3)
        roughness = float(np.mean(np.abs(laplacian))) / 32.0

        return TextureFeatures(
            coarseness=_clamp(coarseness),
            contrast=_clamp(contrast),
            directionality=_directionality(gray),
            roughness=_clamp(roughness),
            regularity=_regularity(gray),
        )

    except cv2.error as e:
        logger.error(f"Texture analysis failed: {e}")
        return TextureFeatures(0.5, 0.5, 0.5, 0.5, 0.5)


def texture_labels(texture: TextureFeatures) -> List[str]:
    """Keyword labels suggested by texture metrics."""
    labels = []

    if texture.coarseness > 0.7:
        labels += ["textured", "rough", "fabric", "textile", "leather"]
    elif texture.coarseness < 0.3:
        labels += ["smooth", "glossy", "plastic", "metal", "glass"]

    if texture.contrast > 0.7:
        labels += ["high contrast", "patterned"]

    if texture.regularity > 0.7:
        labels += ["regular pattern", "symmetrical"]

    return labels


def _clamp(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def _directionality(gray: np.ndarray) -> float:
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = np.hypot(gx, gy)

    total = float(magnitude.sum())
    if total <= 0:
        return 0.0

    # Orientation modulo 180 so that opposite gradients count as one direction
    angles = np.degrees(np.arctan2(gy, gx)) % 180
    hist, _ = np.histogram(angles, bins=ORIENTATION_BINS, range=(0, 180),
                           weights=magnitude)
    peak_share = float(hist.max()) / total
    uniform = 1.0 / ORIENTATION_BINS
    return _clamp((peak_share - uniform) / (1.0 - uniform))


def _regularity(gray: np.ndarray) -> float:
    centered = gray - gray.mean()
    spectrum = np.fft.fft2(centered)
    autocorr = np.fft.ifft2(np.abs(spectrum) ** 2).real

    zero_lag = autocorr[0, 0]
    if zero_lag <= 1e-9:
        return 0.0

    autocorr = np.fft.fftshift(autocorr / zero_lag)
    c = TEXTURE_SIZE // 2
    # Ignore the trivial peak around zero lag
    autocorr[c - 2:c + 3, c - 2:c + 3] = 0
    return _clamp(float(autocorr.max()))
