"""
lostfound_search - Image-to-catalog matching for a lost-and-found service.

Extracts dominant colors, coarse shape and texture metrics and keyword
labels from an uploaded photo, then scores every catalog item by how well
its title, category and description agree with those labels (and, when an
item index is available, how similar the item's own image looks).

Modules:
    engine             SearchEngine orchestration
    extractors         Local and remote feature extractors
    preprocessing      Image loading and normalization
    colors             Dominant colors, color labels, color histograms
    shape_descriptors  Aspect-ratio and contour shape metrics
    texture            Texture heuristics
    fingerprint        16x16 brightness fingerprint
    scoring            Weighted item scoring and ranking
    catalog            Read-only catalog sources
    index_builder      Per-item visual feature index (FAISS)
    session            Search dialog state and stale-result guard
    cli                Command-line entry point
"""

from .catalog import CatalogSource, HttpCatalog, InMemoryCatalog, JsonFileCatalog
from .engine import SearchEngine, SearchResult
from .errors import (
    CatalogUnavailableError, ImageLoadError, SearchError, UnsupportedSourceError,
)
from .extractors import (
    FeatureExtractor, LocalHeuristicExtractor, RemoteVisionAPIExtractor, extract_features,
)
from .models import CatalogItem, ImageFeatures, ScoredItem
from .scoring import rank_similar_items

__version__ = "1.0.0"

__all__ = [
    "CatalogItem",
    "CatalogSource",
    "CatalogUnavailableError",
    "FeatureExtractor",
    "HttpCatalog",
    "ImageFeatures",
    "ImageLoadError",
    "InMemoryCatalog",
    "JsonFileCatalog",
    "LocalHeuristicExtractor",
    "RemoteVisionAPIExtractor",
    "ScoredItem",
    "SearchEngine",
    "SearchError",
    "SearchResult",
    "UnsupportedSourceError",
    "extract_features",
    "rank_similar_items",
]
