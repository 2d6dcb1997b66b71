"""
Image search engine for the lost-and-found catalog.

Orchestrates the one-way search pipeline:
    1. Extract features from the uploaded image (local or remote extractor)
    2. Fetch the full catalog snapshot from the catalog source
    3. Score every item and keep the top matches

Every failure (ImageLoadError, UnsupportedSourceError,
CatalogUnavailableError) propagates to the caller unchanged.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .catalog import CatalogSource, open_catalog
from .extractors import FeatureExtractor, LocalHeuristicExtractor, RemoteVisionAPIExtractor
from .index_builder import ItemFeatureIndex
from .models import ImageFeatures, ScoredItem
from .scoring import TOP_K, rank_similar_items

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Outcome of one search: the extracted features and ranked matches."""

    features: ImageFeatures
    results: List[ScoredItem]
    sequence: int = 0
    visual_neighbors: List[Tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "analysis": self.features.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "visualNeighbors": [
                {"id": item_id, "distance": round(dist, 4)}
                for item_id, dist in self.visual_neighbors
            ],
        }


class SearchEngine:
    """
    Image-to-catalog similarity search.

    The engine keeps no per-search state; concurrent searches only share
    the (read-only) extractor, catalog source and item index.
    """

    def __init__(self,
                 catalog: CatalogSource,
                 extractor: Optional[FeatureExtractor] = None,
                 item_index: Optional[ItemFeatureIndex] = None,
                 top_k: int = TOP_K,
                 weights: Dict[str, float] = None):
        """
        Args:
            catalog: Source of catalog items, queried on every search.
            extractor: Feature extractor (defaults to local heuristics).
            item_index: Optional per-item visual features; enables the
                color, object and feature score components.
            top_k: Maximum number of results per search.
            weights: Optional override of the scoring weights.
        """
        self.catalog = catalog
        self.extractor = extractor or LocalHeuristicExtractor()
        self.item_index = item_index
        self.top_k = top_k
        self.weights = weights

        if item_index is not None:
            logger.info(f"Search engine ready: {self.extractor.name} extractor, "
                        f"item index with {len(item_index)} items")
        else:
            logger.info(f"Search engine ready: {self.extractor.name} extractor, "
                        f"no item index")

    @classmethod
    def from_locations(cls,
                       catalog_location: str,
                       index_dir: Optional[str] = None,
                       vision_endpoint: Optional[str] = None,
                       top_k: int = TOP_K) -> "SearchEngine":
        """Build an engine from a catalog path/URL and optional index directory."""
        extractor = (RemoteVisionAPIExtractor(vision_endpoint)
                     if vision_endpoint else LocalHeuristicExtractor())
        item_index = ItemFeatureIndex.load(index_dir) if index_dir else None
        return cls(open_catalog(catalog_location), extractor, item_index, top_k)

    def analyze(self, image_input) -> ImageFeatures:
        """Extract features from an image without touching the catalog."""
        return self.extractor.extract(image_input)

    def rank(self, features: ImageFeatures) -> List[ScoredItem]:
        """Fetch the catalog and rank it against already extracted features."""
        items = self.catalog.fetch_all_items()
        return rank_similar_items(features, items, top_k=self.top_k,
                                  item_index=self.item_index, weights=self.weights)

    def search(self, image_input, sequence: int = 0) -> SearchResult:
        """
        Run the full pipeline for one uploaded image.

        Args:
            image_input: Anything load_image() accepts.
            sequence: Search sequence number, echoed in the result.

        Returns:
            SearchResult with at most top_k matches, best first.
        """
        features = self.analyze(image_input)
        results = self.rank(features)

        neighbors = []
        if self.item_index is not None and features.color_histogram is not None:
            neighbors = self.item_index.nearest(features.color_histogram, k=self.top_k)

        if results:
            logger.info(
                f"Search #{sequence} complete: {len(results)} results, "
                f"best {results[0].score:.2f}"
            )
        else:
            logger.info(f"Search #{sequence} complete: no results")
        return SearchResult(features=features, results=results,
                            sequence=sequence, visual_neighbors=neighbors)
