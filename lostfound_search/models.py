"""
Data model for the item-similarity search engine.

ImageFeatures and ScoredItem are ephemeral: built per search, never
persisted. CatalogItem mirrors a document from the item store and is
treated as read-only. ItemVisualFeatures is produced ahead of time by the
index builder from an item's stored image.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

RGB = Tuple[int, int, int]

FINGERPRINT_BITS = 256


@dataclass(frozen=True)
class ShapeFeatures:
    """Coarse shape metrics. All values except aspect_ratio are in [0, 1]."""

    aspect_ratio: float
    rectangularity: float
    roundness: float
    squareness: float
    symmetry: float
    compactness: float
    complexity: float

    @property
    def circularity(self) -> float:
        return self.roundness

    def as_dict(self) -> Dict[str, float]:
        return {
            "aspectRatio": self.aspect_ratio,
            "rectangularity": self.rectangularity,
            "roundness": self.roundness,
            "circularity": self.roundness,
            "squareness": self.squareness,
            "symmetry": self.symmetry,
            "compactness": self.compactness,
            "complexity": self.complexity,
        }


@dataclass(frozen=True)
class TextureFeatures:
    """Texture heuristics, each in [0, 1]."""

    coarseness: float
    contrast: float
    directionality: float
    roughness: float
    regularity: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "coarseness": self.coarseness,
            "contrast": self.contrast,
            "directionality": self.directionality,
            "roughness": self.roughness,
            "regularity": self.regularity,
        }


@dataclass
class ImageFeatures:
    """Compact description of an uploaded image."""

    dominant_colors: List[RGB]
    labels: List[str]
    shape_features: ShapeFeatures
    fingerprint: np.ndarray
    texture_features: Optional[TextureFeatures] = None
    label_scores: List[float] = field(default_factory=list)
    color_scores: List[float] = field(default_factory=list)
    color_histogram: Optional[np.ndarray] = None
    brightness: float = 0.0
    source: str = "local"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view, keyed the way the web client expects."""
        return {
            "dominantColors": [list(c) for c in self.dominant_colors],
            "labels": list(self.labels),
            "labelScores": [round(s, 3) for s in self.label_scores],
            "shapeFeatures": self.shape_features.as_dict(),
            "textureFeatures": (self.texture_features.as_dict()
                                if self.texture_features else None),
            "fingerprint": "".join(str(int(b)) for b in self.fingerprint),
            "brightness": round(self.brightness, 4),
            "source": self.source,
        }


@dataclass(frozen=True)
class CatalogItem:
    """A lost-and-found item record as stored in the document store."""

    id: str
    title: str = ""
    description: str = ""
    category: str = ""
    location: str = ""
    image: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogItem":
        """Build an item from a store document, ignoring unknown fields."""
        def text(key):
            value = data.get(key)
            return "" if value is None else str(value)

        return cls(
            id=text("id"),
            title=text("title"),
            description=text("description"),
            category=text("category"),
            location=text("location"),
            image=text("image"),
            status=text("status"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "location": self.location,
            "image": self.image,
            "status": self.status,
        }


@dataclass
class ItemVisualFeatures:
    """Visual features computed from a catalog item's stored image."""

    color_histogram: np.ndarray
    fingerprint: np.ndarray
    shape_vector: np.ndarray


@dataclass
class ScoredItem:
    """A catalog item paired with its match score in [0, 0.98]."""

    item: CatalogItem
    score: float
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = self.item.to_dict()
        result["score"] = round(self.score, 4)
        result["match"] = f"{round(self.score * 100)}% match"
        result["breakdown"] = {k: round(v, 4) for k, v in self.breakdown.items()}
        return result
