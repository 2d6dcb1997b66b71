"""
Coarse shape metrics and shape-derived labels.

Rectangularity, roundness and squareness are derived from the image's
aspect ratio alone with hand-tuned formulas: a 3:2 frame reads as
"rectangular", a 1:1 frame as "round" and "square". Symmetry, compactness
and complexity are measured on the image itself:
    symmetry     left/right mirror agreement of the luminance
    compactness  circularity (4πA/P²) of the main foreground contour
    complexity   Canny edge density

The 7-element shape vector built from these metrics is what the item index
stores per catalog image.
"""

import logging
import os
from typing import List

import cv2
import numpy as np

from .models import ShapeFeatures
from .preprocessing import alpha_mask, normalize_image, to_gray

logger = logging.getLogger(__name__)

# Images are downscaled to this max dimension before contour/edge analysis
SHAPE_ANALYSIS_SIZE = int(os.environ.get("SHAPE_ANALYSIS_SIZE", "200"))

# Edge density at which complexity saturates at 1.0
EDGE_DENSITY_SATURATION = float(os.environ.get("EDGE_DENSITY_SAT", "0.2"))

SHAPE_VECTOR_DIM = 7

NEUTRAL = 0.5


def compute_shape_features(image_np: np.ndarray) -> ShapeFeatures:
    """
    Compute shape metrics for an image at its native aspect ratio.

    Args:
        image_np: RGB or RGBA uint8 image (not resampled to a square).

    Returns:
        ShapeFeatures with every metric except aspect_ratio in [0, 1].
    """
    image_np = normalize_image(image_np)
    h, w = image_np.shape[:2]
    aspect_ratio = float(w) / max(h, 1)

    rectangularity = _clamp(1.0 - abs(aspect_ratio - 1.5) / 2.0, 0.5, 1.0)
    roundness = _clamp(1.0 - abs(aspect_ratio - 1.0) * 2.0)
    squareness = _clamp(1.0 - abs(aspect_ratio - 1.0) * 3.0)

    small = _downscale(image_np)
    gray = to_gray(small)

    return ShapeFeatures(
        aspect_ratio=aspect_ratio,
        rectangularity=rectangularity,
        roundness=roundness,
        squareness=squareness,
        symmetry=_mirror_symmetry(gray),
        compactness=_contour_compactness(small, gray),
        complexity=_edge_complexity(gray),
    )


def shape_labels(shape: ShapeFeatures) -> List[str]:
    """Keyword labels suggested by the shape metrics."""
    labels = []

    if shape.aspect_ratio > 3.0:
        labels += ["rectangular", "elongated", "card", "id card", "ticket"]
    elif shape.rectangularity > 0.8:
        if shape.aspect_ratio > 1.7:
            labels += ["rectangular", "elongated", "phone", "smartphone", "wallet"]
        elif abs(shape.aspect_ratio - 1.0) < 0.2:
            labels += ["square", "compact", "wallet", "card holder", "compact device"]
        else:
            labels += ["rectangular", "book", "notebook", "tablet"]

    if shape.roundness > 0.8:
        labels += ["round", "circular", "watch", "coin", "ring", "button"]

    if shape.complexity > 0.8:
        labels += ["complex", "detailed", "jewelry", "electronic device", "multi-part"]
    elif shape.complexity < 0.3:
        labels += ["simple", "minimalist", "card", "tag", "paper"]

    return labels


def shape_vector(shape: ShapeFeatures) -> np.ndarray:
    """Pack shape metrics into a fixed-length vector for comparison."""
    aspect_feature = np.clip(np.log2(max(shape.aspect_ratio, 0.1)), -2, 2) / 2.0
    return np.array([
        aspect_feature,
        shape.rectangularity,
        shape.roundness,
        shape.squareness,
        shape.symmetry,
        shape.compactness,
        shape.complexity,
    ], dtype=np.float32)


def compare_shape_vectors(query: np.ndarray, target: np.ndarray) -> float:
    """Similarity of two shape vectors in [0, 1] (1 = identical)."""
    if query is None or target is None:
        return 0.0
    if len(query) != SHAPE_VECTOR_DIM or len(target) != SHAPE_VECTOR_DIM:
        return 0.0
    dist = float(np.linalg.norm(np.asarray(query) - np.asarray(target)))
    return max(0.0, 1.0 - dist / 2.0)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(min(high, max(low, value)))


def _downscale(image_np: np.ndarray) -> np.ndarray:
    h, w = image_np.shape[:2]
    scale = SHAPE_ANALYSIS_SIZE / max(h, w)
    if scale < 1.0:
        image_np = cv2.resize(image_np, (max(1, int(w * scale)), max(1, int(h * scale))),
                              interpolation=cv2.INTER_AREA)
    return image_np


def _mirror_symmetry(gray: np.ndarray) -> float:
    """1.0 for a perfectly mirror-symmetric image, 0.0 at 64 levels mean difference."""
    g = gray.astype(np.float32)
    mean_diff = float(np.mean(np.abs(g - g[:, ::-1])))
    return _clamp(1.0 - mean_diff / 64.0)


def _foreground_mask(image_np: np.ndarray, gray: np.ndarray) -> np.ndarray:
    """Foreground from alpha when the image has transparency, else Otsu."""
    opaque = alpha_mask(image_np)
    if not opaque.all():
        return opaque.astype(np.uint8) * 255

    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    _, binary = cv2.threshold(blurred, 0, 255,
                              cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)

    # Invert if Otsu selected the background
    if np.mean(binary) > 127:
        binary = cv2.bitwise_not(binary)
    return binary


def _contour_compactness(image_np: np.ndarray, gray: np.ndarray) -> float:
    try:
        binary = _foreground_mask(image_np, gray)
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL,
                                       cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return NEUTRAL

        main_contour = max(contours, key=cv2.contourArea)
        area = cv2.contourArea(main_contour)
        h, w = gray.shape[:2]

        # Contour must cover at least 1% of the image to count
        if area < h * w * 0.01:
            return NEUTRAL

        perimeter = cv2.arcLength(main_contour, True)
        return _clamp((4 * np.pi * area) / max(perimeter ** 2, 1))

    except cv2.error as e:
        logger.error(f"Contour compactness failed: {e}")
        return NEUTRAL


def _edge_complexity(gray: np.ndarray) -> float:
    try:
        edges = cv2.Canny(gray, 50, 150)
        density = float(np.count_nonzero(edges)) / max(edges.size, 1)
        return _clamp(density / EDGE_DENSITY_SATURATION)
    except cv2.error as e:
        logger.error(f"Edge complexity failed: {e}")
        return NEUTRAL
