"""
Catalog scoring and ranking for image search results.

Each catalog item gets a weighted combination of six component scores:

    title        labels found in the item title
    category     labels naming the item category or its keywords
    description  labels found in the item description
    color        color histogram similarity to the item's own image
    object       shape similarity to the item's own image
    feature      fingerprint similarity to the item's own image

The three visual components need per-item features from the item index
(see index_builder). Without them they contribute exactly 0, so results
are fully deterministic and driven by the text signals alone.

Weights are loaded from environment variables and sum to 1.0 by default.
The final score is clamped to SCORE_MAX so a heuristic match never reads
as certainty.
"""

import logging
import os
from typing import Dict, List, Optional, Sequence

from .colors import CATEGORY_KEYWORDS, compare_color_histograms
from .fingerprint import compare_fingerprints
from .models import CatalogItem, ImageFeatures, ItemVisualFeatures, ScoredItem
from .shape_descriptors import compare_shape_vectors, shape_vector

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    "title":       float(os.environ.get("SCORE_TITLE_W", "0.30")),
    "category":    float(os.environ.get("SCORE_CATEGORY_W", "0.20")),
    "description": float(os.environ.get("SCORE_DESCRIPTION_W", "0.15")),
    "color":       float(os.environ.get("SCORE_COLOR_W", "0.15")),
    "object":      float(os.environ.get("SCORE_OBJECT_W", "0.10")),
    "feature":     float(os.environ.get("SCORE_FEATURE_W", "0.10")),
}

SCORE_MAX = float(os.environ.get("SCORE_MAX", "0.98"))
TOP_K = int(os.environ.get("TOP_K", "5"))

TITLE_COEFFICIENT = 0.3
DESCRIPTION_COEFFICIENT = 0.2
CATEGORY_DIRECT_SCORE = 0.7
CATEGORY_KEYWORD_SCORE = 0.2


def _normalized(labels: Sequence[str]) -> List[str]:
    return [str(label).lower() for label in labels if label]


def _rank_weighted_matches(text: str, labels: Sequence[str]) -> float:
    """Sum of 1/(rank+1) over labels contained in text."""
    text = text.lower()
    return sum(1.0 / (rank + 1)
               for rank, label in enumerate(_normalized(labels))
               if label in text)


def title_score(item: CatalogItem, labels: Sequence[str]) -> float:
    """Label containment in the title, earlier labels weighted higher. [0, 1]"""
    if not item.title:
        return 0.0
    return min(1.0, _rank_weighted_matches(item.title, labels) * TITLE_COEFFICIENT)


def description_score(item: CatalogItem, labels: Sequence[str]) -> float:
    """Label containment in the description. [0, 1]"""
    if not item.description:
        return 0.0
    return min(1.0, _rank_weighted_matches(item.description, labels) * DESCRIPTION_COEFFICIENT)


def category_score(item: CatalogItem, labels: Sequence[str]) -> float:
    """
    Category agreement in [0, 1].

    A label equal to the category scores 0.7; each label that is one of
    the category's keywords adds 0.2.
    """
    category = item.category.strip().lower()
    if not category:
        return 0.0

    labels = _normalized(labels)
    score = CATEGORY_DIRECT_SCORE if category in labels else 0.0

    keywords = CATEGORY_KEYWORDS.get(category, [])
    score += CATEGORY_KEYWORD_SCORE * sum(1 for label in labels if label in keywords)

    return min(1.0, score)


def color_score(features: ImageFeatures,
                item_features: Optional[ItemVisualFeatures]) -> float:
    if item_features is None or features.color_histogram is None:
        return 0.0
    return compare_color_histograms(features.color_histogram, item_features.color_histogram)


def object_match_score(features: ImageFeatures,
                       item_features: Optional[ItemVisualFeatures]) -> float:
    if item_features is None:
        return 0.0
    return compare_shape_vectors(shape_vector(features.shape_features),
                                 item_features.shape_vector)


def feature_match_score(features: ImageFeatures,
                        item_features: Optional[ItemVisualFeatures]) -> float:
    if item_features is None:
        return 0.0
    return compare_fingerprints(features.fingerprint, item_features.fingerprint)


def compute_confidence(components: Dict[str, float],
                       weights: Dict[str, float] = None) -> float:
    """
    Weighted sum of component scores, clamped to [0, SCORE_MAX].

    Args:
        components: Component name -> score in [0, 1].
        weights: Optional override for DEFAULT_WEIGHTS.
    """
    weights = weights or DEFAULT_WEIGHTS
    total = sum(weights.get(name, 0.0) * value for name, value in components.items())
    return float(min(SCORE_MAX, max(0.0, total)))


def score_item(features: ImageFeatures,
               item: CatalogItem,
               item_features: Optional[ItemVisualFeatures] = None,
               weights: Dict[str, float] = None) -> ScoredItem:
    """Score one catalog item against the extracted features."""
    labels = features.labels
    components = {
        "title": title_score(item, labels),
        "category": category_score(item, labels),
        "description": description_score(item, labels),
        "color": color_score(features, item_features),
        "object": object_match_score(features, item_features),
        "feature": feature_match_score(features, item_features),
    }
    score = compute_confidence(components, weights)

    logger.debug(
        f"Item {item.id!r} ({item.title!r}): "
        + " ".join(f"{k}={v:.2f}" for k, v in components.items())
        + f" total={score:.3f}"
    )
    return ScoredItem(item=item, score=score, breakdown=components)


def score_catalog(features: ImageFeatures,
                  items: Sequence[CatalogItem],
                  item_index=None,
                  weights: Dict[str, float] = None) -> List[ScoredItem]:
    """
    Score every catalog item. Output is in catalog order, unsorted.

    Args:
        features: Features of the uploaded image.
        items: Catalog snapshot.
        item_index: Optional lookup with .get(item_id) returning
            ItemVisualFeatures or None (an ItemFeatureIndex or a dict).
        weights: Optional override for DEFAULT_WEIGHTS.
    """
    scored = []
    for item in items:
        item_features = item_index.get(item.id) if item_index is not None else None
        scored.append(score_item(features, item, item_features, weights))
    return scored


def rank_results(results: Sequence[ScoredItem], top_k: int = TOP_K) -> List[ScoredItem]:
    """
    Sort scored items by score, highest first, and keep the top_k.

    The sort is stable, so equal scores keep catalog order.
    """
    return sorted(results, key=lambda r: -r.score)[:max(0, top_k)]


def rank_similar_items(features: ImageFeatures,
                       catalog_items: Sequence[CatalogItem],
                       top_k: int = TOP_K,
                       item_index=None,
                       weights: Dict[str, float] = None) -> List[ScoredItem]:
    """
    Score a catalog against image features and return the best matches.

    Returns:
        At most min(top_k, len(catalog_items)) ScoredItems, score
        descending. An empty catalog yields an empty list.
    """
    if not catalog_items:
        return []

    scored = score_catalog(features, catalog_items, item_index, weights)
    ranked = rank_results(scored, top_k)
    logger.info(f"Scored {len(scored)} items, returning {len(ranked)}")
    return ranked
