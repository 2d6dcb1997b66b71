"""
Feature extraction strategies.

A FeatureExtractor turns an image source into ImageFeatures. Two variants
are provided and chosen at construction time:

    LocalHeuristicExtractor   everything computed in-process from pixels
    RemoteVisionAPIExtractor  labels and dominant colors from a hosted
                              vision endpoint (Cloud Vision style response),
                              shape/fingerprint/histogram still local

Extractors hold configuration only. No buffers are shared between calls,
so one instance can serve concurrent searches.
"""

import base64
import dataclasses
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import requests

from .colors import (
    COLOR_QUANT_STEP, COLOR_SAMPLE_STRIDE, MAX_DOMINANT_COLORS, MAX_LABELS,
    compute_color_histogram, extract_dominant_colors, generate_color_labels,
    nearest_color_name,
)
from .errors import ImageLoadError
from .fingerprint import compute_fingerprint
from .models import ImageFeatures, RGB
from .preprocessing import (
    IMAGE_FETCH_TIMEOUT, WORKING_SIZE, alpha_mask, decode_image_bytes,
    load_image, read_source_bytes, resize_to_working, to_gray,
)
from .shape_descriptors import compute_shape_features, shape_labels
from .texture import compute_texture_features, texture_labels

logger = logging.getLogger(__name__)

# Label slots reserved for color-derived labels; the rest go to shape and
# texture labels.
COLOR_LABEL_BUDGET = int(os.environ.get("COLOR_LABEL_BUDGET", "7"))

VISION_API_URL = os.environ.get("VISION_API_URL")


def merge_labels(*groups: Iterable[str], max_labels: int = MAX_LABELS) -> List[str]:
    """Concatenate label groups, lowercased, without duplicates, capped."""
    merged = []
    for group in groups:
        for label in group:
            label = str(label).strip().lower()
            if not label or label in merged:
                continue
            if len(merged) >= max_labels:
                return merged
            merged.append(label)
    return merged


class FeatureExtractor(ABC):
    """Interface for turning an uploaded image into ImageFeatures."""

    name: str

    @abstractmethod
    def extract(self, source) -> ImageFeatures:
        """
        Extract features from an image source.

        Raises:
            ImageLoadError: The image cannot be decoded or analyzed.
            UnsupportedSourceError: The source type is not supported.
        """


class LocalHeuristicExtractor(FeatureExtractor):
    """
    In-process extraction from pixel data.

    Colors are sampled at a fixed working resolution, shape metrics use the
    native aspect ratio, and labels are the union of color, shape and
    texture labels.
    """

    name = "local"

    def __init__(self,
                 working_size: int = WORKING_SIZE,
                 stride: int = COLOR_SAMPLE_STRIDE,
                 step: int = COLOR_QUANT_STEP,
                 with_texture: bool = True,
                 timeout: Optional[float] = None):
        self.working_size = working_size
        self.stride = stride
        self.step = step
        self.with_texture = with_texture
        self.timeout = timeout

    def extract(self, source) -> ImageFeatures:
        image = load_image(source, timeout=self.timeout)
        return self.extract_from_array(image)

    def extract_from_array(self, image: np.ndarray) -> ImageFeatures:
        """Extract features from an already-decoded RGBA image."""
        shape = compute_shape_features(image)

        working = resize_to_working(image, self.working_size)
        colors = extract_dominant_colors(working, stride=self.stride, step=self.step)
        color_labels = generate_color_labels(colors, max_labels=COLOR_LABEL_BUDGET)

        texture = compute_texture_features(image) if self.with_texture else None
        labels = merge_labels(
            color_labels,
            shape_labels(shape),
            texture_labels(texture) if texture else [],
        )

        features = ImageFeatures(
            dominant_colors=colors,
            labels=labels,
            shape_features=shape,
            fingerprint=compute_fingerprint(image),
            texture_features=texture,
            label_scores=[max(0.5, 1.0 - i * 0.05) for i in range(len(labels))],
            color_scores=[1.0 - i * 0.1 for i in range(len(colors))],
            color_histogram=compute_color_histogram(image),
            brightness=_brightness(image),
            source=self.name,
        )

        logger.info(
            f"Extracted {len(colors)} colors, {len(labels)} labels "
            f"(aspect {shape.aspect_ratio:.2f})"
        )
        return features


class RemoteVisionAPIExtractor(FeatureExtractor):
    """
    Extraction backed by a hosted vision endpoint.

    The original image bytes are POSTed base64-encoded as {"image": ...}.
    The response is expected in Cloud Vision annotate format, optionally
    wrapped in a {"result": ...} envelope:
        labelAnnotations[].description/score
        localizedObjectAnnotations[].name/score
        imagePropertiesAnnotation.dominantColors.colors[].color.red/green/blue
    """

    name = "remote"

    def __init__(self,
                 endpoint: Optional[str] = None,
                 timeout: Optional[float] = None,
                 local: Optional[LocalHeuristicExtractor] = None):
        self.endpoint = endpoint or VISION_API_URL
        if not self.endpoint:
            raise ValueError("RemoteVisionAPIExtractor requires an endpoint "
                             "(argument or VISION_API_URL)")
        self.timeout = timeout or IMAGE_FETCH_TIMEOUT
        self.local = local or LocalHeuristicExtractor(timeout=timeout)

    def extract(self, source) -> ImageFeatures:
        data = read_source_bytes(source, timeout=self.timeout)
        # Decode first so that garbage never reaches the remote service
        image = decode_image_bytes(data)

        annotations = self._annotate(data)
        try:
            labels, label_scores = _labels_from_annotations(annotations)
            colors, color_scores = _colors_from_annotations(annotations)
        except (AttributeError, TypeError, ValueError) as e:
            raise ImageLoadError(
                f"Vision endpoint returned malformed annotations: {e}"
            ) from e

        base = self.local.extract_from_array(image)
        if not colors:
            colors, color_scores = base.dominant_colors, base.color_scores

        color_names = [nearest_color_name(c) for c in colors]
        merged = merge_labels(labels, color_names)
        scores = dict(zip(labels, label_scores))

        logger.info(f"Remote analysis returned {len(labels)} labels, {len(colors)} colors")

        return dataclasses.replace(
            base,
            dominant_colors=colors,
            color_scores=color_scores,
            labels=merged,
            label_scores=[scores.get(label, 0.5) for label in merged],
            source=self.name,
        )

    def _annotate(self, data: bytes) -> Dict[str, Any]:
        payload = {"image": base64.b64encode(data).decode("ascii")}
        try:
            response = requests.post(self.endpoint, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise ImageLoadError(f"Failed to analyze image: {e}") from e
        except ValueError as e:
            raise ImageLoadError(f"Vision endpoint returned invalid JSON: {e}") from e

        if isinstance(body, dict) and isinstance(body.get("result"), dict):
            body = body["result"]
        if not isinstance(body, dict):
            raise ImageLoadError("Vision endpoint returned an unexpected payload")
        return body


def extract_features(source, extractor: Optional[FeatureExtractor] = None) -> ImageFeatures:
    """Extract ImageFeatures with the given extractor (local by default)."""
    extractor = extractor or LocalHeuristicExtractor()
    return extractor.extract(source)


def _brightness(image: np.ndarray) -> float:
    mask = alpha_mask(image)
    if not mask.any():
        return 0.0
    return float(np.mean(to_gray(image)[mask])) / 255.0


def _labels_from_annotations(annotations: Dict[str, Any]) -> Tuple[List[str], List[float]]:
    scored = []
    for entry in annotations.get("labelAnnotations") or []:
        scored.append((entry.get("description"), entry.get("score") or 0.0))
    for entry in annotations.get("localizedObjectAnnotations") or []:
        scored.append((entry.get("name"), entry.get("score") or 0.0))

    labels, scores = [], []
    # Stable sort keeps the service's order among equal scores
    for text, score in sorted(scored, key=lambda x: -float(x[1])):
        if not text:
            continue
        text = str(text).strip().lower()
        if text in labels:
            continue
        labels.append(text)
        scores.append(float(score))
    return labels[:MAX_LABELS], scores[:MAX_LABELS]


def _colors_from_annotations(annotations: Dict[str, Any]) -> Tuple[List[RGB], List[float]]:
    properties = annotations.get("imagePropertiesAnnotation") or {}
    entries = (properties.get("dominantColors") or {}).get("colors") or []

    colors, scores = [], []
    for entry in entries[:MAX_DOMINANT_COLORS]:
        color = entry.get("color") or {}
        colors.append((
            int(round(color.get("red") or 0)),
            int(round(color.get("green") or 0)),
            int(round(color.get("blue") or 0)),
        ))
        scores.append(float(entry.get("score") or 0.0))
    return colors, scores
