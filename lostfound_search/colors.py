"""
Dominant color extraction, color-to-keyword label inference and color
histograms.

Dominant colors are found by sampling pixels at a fixed stride, dropping
near-transparent pixels, quantizing each channel to a coarse bucket and
counting. The resulting RGB triples are named by nearest Euclidean
distance against a small palette, and each named color pulls in the item
categories and object keywords commonly associated with it. Those
keywords are a weak proxy for "what object is this" and are only ever
string-matched against catalog text.

Sampling stride and quantization step are configurable via environment
variables (COLOR_SAMPLE_STRIDE, COLOR_QUANT_STEP).
"""

import logging
import os
from typing import Dict, List, Sequence

import cv2
import numpy as np

from .models import RGB
from .preprocessing import alpha_mask, normalize_image

logger = logging.getLogger(__name__)

COLOR_SAMPLE_STRIDE = int(os.environ.get("COLOR_SAMPLE_STRIDE", "4"))
COLOR_QUANT_STEP = int(os.environ.get("COLOR_QUANT_STEP", "32"))
MAX_DOMINANT_COLORS = 5
MAX_LABELS = 10
ALPHA_THRESHOLD = 128

# Leading keywords taken from each category a color suggests
CATEGORY_KEYWORDS_PER_COLOR = 3

# Histogram layout: 12 hue x 4 saturation x 4 value bins
HIST_H_BINS = 12
HIST_S_BINS = 4
HIST_V_BINS = 4
HIST_DIM = HIST_H_BINS * HIST_S_BINS * HIST_V_BINS
HIST_SIZE = 64

NAMED_COLORS: Dict[str, RGB] = {
    "red": (255, 0, 0),
    "dark red": (128, 0, 0),
    "pink": (255, 192, 203),
    "salmon": (250, 128, 114),
    "orange": (255, 165, 0),
    "coral": (255, 127, 80),
    "yellow": (255, 255, 0),
    "gold": (255, 215, 0),
    "green": (0, 255, 0),
    "dark green": (0, 128, 0),
    "lime": (50, 205, 50),
    "blue": (0, 0, 255),
    "navy": (0, 0, 128),
    "sky blue": (135, 206, 235),
    "purple": (128, 0, 128),
    "violet": (238, 130, 238),
    "brown": (165, 42, 42),
    "white": (255, 255, 255),
    "black": (0, 0, 0),
    "gray": (128, 128, 128),
    "silver": (192, 192, 192),
}

# Shades inherit the categories of their base color
COLOR_FAMILY = {
    "dark red": "red",
    "salmon": "pink",
    "coral": "orange",
    "gold": "yellow",
    "dark green": "green",
    "lime": "green",
    "navy": "blue",
    "sky blue": "blue",
    "violet": "purple",
    "silver": "gray",
}

COLOR_CATEGORIES: Dict[str, List[str]] = {
    "black": ["electronics", "accessories"],
    "white": ["electronics", "accessories"],
    "gray": ["electronics", "accessories"],
    "blue": ["electronics", "clothing"],
    "red": ["accessories", "clothing"],
    "pink": ["accessories", "clothing"],
    "brown": ["accessories", "clothing", "documents"],
    "green": ["clothing", "accessories"],
    "orange": ["personal", "documents"],
    "yellow": ["documents", "accessories"],
    "purple": ["accessories", "clothing"],
}

COLOR_OBJECTS: Dict[str, List[str]] = {
    "red": ["wallet", "bag", "phone case", "jacket"],
    "dark red": ["wallet", "bag", "clothing"],
    "pink": ["phone case", "wallet", "clothing"],
    "salmon": ["document", "notebook", "wallet"],
    "orange": ["notebook", "bag", "water bottle"],
    "coral": ["clothing", "notebook", "wallet"],
    "yellow": ["notebook", "wallet", "bag"],
    "gold": ["jewelry", "watch", "accessory"],
    "green": ["wallet", "notebook", "water bottle"],
    "dark green": ["bag", "wallet", "clothing"],
    "lime": ["sports equipment", "water bottle"],
    "blue": ["phone", "wallet", "notebook", "water bottle"],
    "navy": ["bag", "wallet", "clothing"],
    "sky blue": ["phone case", "water bottle"],
    "purple": ["bag", "wallet", "notebook"],
    "violet": ["clothing", "accessory"],
    "brown": ["wallet", "bag", "clothing", "notebook"],
    "white": ["phone", "earbuds", "electronics"],
    "black": ["phone", "wallet", "electronics", "sunglasses"],
    "gray": ["electronics", "phone", "laptop", "watch"],
    "silver": ["phone", "laptop", "electronics", "keys"],
}

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "electronics": ["phone", "smartphone", "iphone", "android", "laptop",
                    "computer", "tablet", "ipad", "earbuds", "headphones",
                    "watch", "smart watch", "camera", "charger", "cable"],
    "accessories": ["wallet", "purse", "bag", "backpack", "jewelry",
                    "necklace", "ring", "watch", "sunglasses", "glasses",
                    "hat", "cap", "umbrella", "keychain"],
    "clothing": ["jacket", "shirt", "pants", "jeans", "dress", "skirt",
                 "sweater", "hoodie", "coat", "socks", "shoes", "boots",
                 "sneakers"],
    "documents": ["id", "card", "passport", "book", "notebook", "paper",
                  "document", "folder", "file"],
    "personal": ["keys", "bottle", "water bottle", "medicine", "cosmetics",
                 "makeup", "toy"],
}

_PALETTE_NAMES = list(NAMED_COLORS)
_PALETTE = np.array([NAMED_COLORS[n] for n in _PALETTE_NAMES], dtype=np.float64)


def extract_dominant_colors(image_np: np.ndarray,
                            stride: int = COLOR_SAMPLE_STRIDE,
                            step: int = COLOR_QUANT_STEP,
                            max_colors: int = MAX_DOMINANT_COLORS) -> List[RGB]:
    """
    Find the most frequent quantized colors of an image.

    Process:
        1. Visit every `stride`-th pixel in row-major order
        2. Skip pixels with alpha below 128
        3. Round each channel to the nearest multiple of `step` (max 255)
        4. Count occurrences, most frequent first; ties keep the order in
           which the colors were first seen

    Args:
        image_np: RGB or RGBA uint8 image.
        stride: Sampling interval in pixels.
        step: Quantization bucket size per channel.
        max_colors: Number of colors to return.

    Returns:
        Up to `max_colors` (r, g, b) tuples. Empty if the image is fully
        transparent.
    """
    image_np = normalize_image(image_np)
    stride = max(1, int(stride))
    step = max(1, int(step))

    pixels = image_np.reshape(-1, 4)[::stride]
    pixels = pixels[pixels[:, 3] >= ALPHA_THRESHOLD]
    if len(pixels) == 0:
        return []

    # Round half up, then clamp so that 256 folds back to 255
    quantized = np.floor(pixels[:, :3].astype(np.float64) / step + 0.5) * step
    quantized = np.clip(quantized, 0, 255).astype(np.int64)

    keys = (quantized[:, 0] << 16) | (quantized[:, 1] << 8) | quantized[:, 2]
    unique_keys, first_seen, counts = np.unique(
        keys, return_index=True, return_counts=True
    )

    order = np.lexsort((first_seen, -counts))[:max_colors]
    colors = []
    for key in unique_keys[order]:
        key = int(key)
        colors.append(((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF))

    logger.debug(f"Dominant colors: {colors}")
    return colors


def nearest_color_name(color: Sequence[int]) -> str:
    """Name of the palette color closest to `color` in RGB space."""
    distances = np.linalg.norm(_PALETTE - np.asarray(color[:3], dtype=np.float64), axis=1)
    return _PALETTE_NAMES[int(np.argmin(distances))]


def color_categories(color_name: str) -> List[str]:
    """Item categories commonly associated with a named color."""
    base = COLOR_FAMILY.get(color_name, color_name)
    return COLOR_CATEGORIES.get(base, [])


def generate_color_labels(colors: Sequence[Sequence[int]],
                          max_labels: int = MAX_LABELS) -> List[str]:
    """
    Turn dominant colors into keyword labels.

    Color names come first, in dominance order, so they are never crowded
    out. The remaining slots are filled per color with its associated
    categories, the first keywords of each of those categories, and then
    its object keywords. Duplicates are dropped.

    Args:
        colors: Dominant colors, most frequent first.
        max_labels: Maximum number of labels.

    Returns:
        Lowercase labels, at most `max_labels` long.
    """
    names = []
    for color in colors:
        name = nearest_color_name(color)
        if name not in names:
            names.append(name)

    labels = names[:max_labels]
    for name in names:
        categories = color_categories(name)
        keywords = list(categories)
        for category in categories:
            keywords += CATEGORY_KEYWORDS.get(category, [])[:CATEGORY_KEYWORDS_PER_COLOR]
        keywords += COLOR_OBJECTS.get(name, [])

        for keyword in keywords:
            if len(labels) >= max_labels:
                return labels
            if keyword not in labels:
                labels.append(keyword)

    return labels


def compute_color_histogram(image_np: np.ndarray) -> np.ndarray:
    """
    Compute a center-weighted HSV color histogram.

    The image is resampled to 64x64, transparent pixels are ignored and
    every pixel is weighted from 1.0 at the corners to 3.0 at the center
    to reduce background influence.

    Args:
        image_np: RGB or RGBA uint8 image.

    Returns:
        L1-normalized float32 vector with HIST_DIM entries (all zeros if
        the image is fully transparent).
    """
    image_np = normalize_image(image_np)
    small = cv2.resize(image_np, (HIST_SIZE, HIST_SIZE), interpolation=cv2.INTER_AREA)

    hsv = cv2.cvtColor(np.ascontiguousarray(small[:, :, :3]), cv2.COLOR_RGB2HSV)
    mask = alpha_mask(small, ALPHA_THRESHOLD)

    h_bin = np.minimum(hsv[:, :, 0].astype(np.int64) * HIST_H_BINS // 180, HIST_H_BINS - 1)
    s_bin = hsv[:, :, 1].astype(np.int64) * HIST_S_BINS // 256
    v_bin = hsv[:, :, 2].astype(np.int64) * HIST_V_BINS // 256
    bins = h_bin * HIST_S_BINS * HIST_V_BINS + s_bin * HIST_V_BINS + v_bin

    ys, xs = np.mgrid[0:HIST_SIZE, 0:HIST_SIZE]
    center = HIST_SIZE / 2
    dist = np.sqrt((xs - center) ** 2 + (ys - center) ** 2)
    weights = 1.0 + 2.0 * (1.0 - dist / np.sqrt(2 * center ** 2))

    hist = np.bincount(bins[mask], weights=weights[mask], minlength=HIST_DIM)
    total = hist.sum()
    if total > 0:
        hist = hist / total

    return hist.astype(np.float32)


def compare_color_histograms(hist_a: np.ndarray, hist_b: np.ndarray) -> float:
    """
    Similarity of two color histograms in [0, 1].

    Uses the Bhattacharyya coefficient, then spreads the scores so that
    near-identical histograms stay close to 1 while loosely related ones
    fall off quickly.
    """
    if hist_a is None or hist_b is None:
        return 0.0
    if len(hist_a) == 0 or len(hist_a) != len(hist_b):
        return 0.0

    bc = float(np.sum(np.sqrt(np.clip(hist_a, 0, None) * np.clip(hist_b, 0, None))))
    bc = min(1.0, bc)

    if bc > 0.95:
        return bc
    if bc > 0.80:
        return 0.65 + (bc - 0.80) * 2.0
    if bc > 0.60:
        return 0.30 + (bc - 0.60) * 1.75
    return bc * 0.5
