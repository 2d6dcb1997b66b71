"""
Coarse perceptual fingerprint: a 16x16 grid of average brightness,
binarized at 127, giving a 256-bit signature.
"""

import numpy as np
import cv2

from .preprocessing import normalize_image, to_gray

FINGERPRINT_GRID = 16
FINGERPRINT_THRESHOLD = 127


def compute_fingerprint(image_np: np.ndarray,
                        grid: int = FINGERPRINT_GRID,
                        threshold: int = FINGERPRINT_THRESHOLD) -> np.ndarray:
    """
    Compute the brightness-grid fingerprint of an image.

    Returns:
        uint8 array of grid*grid bits (row-major), 1 where the cell's
        mean luminance is above `threshold`.
    """
    gray = to_gray(normalize_image(image_np))
    cells = cv2.resize(gray.astype(np.float32), (grid, grid),
                       interpolation=cv2.INTER_AREA)
    return (cells > threshold).astype(np.uint8).flatten()


def compare_fingerprints(fp_a: np.ndarray, fp_b: np.ndarray) -> float:
    """
    Hamming similarity of two fingerprints, rescaled to [0, 1].

    Random images agree on about half the bits, so 50% agreement maps to
    0 and identical fingerprints map to 1.
    """
    if fp_a is None or fp_b is None:
        return 0.0
    n = min(len(fp_a), len(fp_b))
    if n == 0:
        return 0.0

    agreement = float(np.mean(np.asarray(fp_a[:n]) == np.asarray(fp_b[:n])))
    adjusted = max(0.0, (agreement - 0.5) / 0.5)

    if adjusted > 0.90:
        return 0.95 + (adjusted - 0.90) * 0.5
    if adjusted > 0.70:
        return 0.75 + (adjusted - 0.70) * 1.0
    if adjusted > 0.40:
        return 0.35 + (adjusted - 0.40) * 4.0 / 3.0
    return adjusted * 0.875
