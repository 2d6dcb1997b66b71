"""
Per-item visual feature index.

Catalog items carry no visual data of their own, only an image URL. This
module fetches each item's image once, computes the same color histogram,
fingerprint and shape vector that the extractor computes for an upload,
and stores them on disk:
    - faiss_color.index  FAISS index over sqrt color histograms
    - item_ids.npy       maps index positions to item ids
    - item_features.npz  histograms, fingerprints, shape vectors

With sqrt histograms, L2 distance in FAISS ranks exactly like the
Bhattacharyya coefficient used for scoring (||√a − √b||² = 2 − 2·BC).

Small catalogs use an exact FlatL2 index; large ones switch to IVFFlat.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import faiss
import numpy as np

from .colors import HIST_DIM, compute_color_histogram
from .errors import SearchError
from .fingerprint import compute_fingerprint
from .models import FINGERPRINT_BITS, CatalogItem, ItemVisualFeatures
from .preprocessing import load_image
from .shape_descriptors import SHAPE_VECTOR_DIM, compute_shape_features, shape_vector

logger = logging.getLogger(__name__)

# Threshold for switching from exact to approximate FAISS index
IVF_THRESHOLD = 1000

FAISS_FILENAME = "faiss_color.index"
IDS_FILENAME = "item_ids.npy"
FEATURES_FILENAME = "item_features.npz"


def compute_item_features(image_np: np.ndarray) -> ItemVisualFeatures:
    """Visual features of a decoded catalog image."""
    return ItemVisualFeatures(
        color_histogram=compute_color_histogram(image_np),
        fingerprint=compute_fingerprint(image_np),
        shape_vector=shape_vector(compute_shape_features(image_np)),
    )


def _resolve_image(location: str, image_root: Optional[str]):
    if image_root and "://" not in location and not location.startswith("data:"):
        path = Path(location)
        if not path.is_absolute():
            return Path(image_root) / path
    return location


def build_item_index(items: Iterable[CatalogItem],
                     output_dir: str,
                     image_root: Optional[str] = None,
                     timeout: Optional[float] = None) -> dict:
    """
    Build the visual feature index for a catalog.

    Args:
        items: Catalog items; those without an image are skipped.
        output_dir: Directory to write index files.
        image_root: Base directory for relative image paths.
        timeout: Download timeout for image URLs.

    Returns:
        Dict with 'success', 'processed', 'skipped', 'errors', 'vectors',
        'dimensions' and 'index_path'.
    """
    os.makedirs(output_dir, exist_ok=True)
    items = list(items)

    item_ids = []
    histograms = []
    fingerprints = []
    shapes = []
    skipped = 0
    errors = 0

    logger.info(f"Building item index from {len(items)} catalog items")

    for i, item in enumerate(items):
        if not item.image:
            skipped += 1
            continue

        try:
            image = load_image(_resolve_image(item.image, image_root), timeout=timeout)
        except SearchError as e:
            logger.warning(f"Failed to load image for item {item.id!r}: {e}")
            errors += 1
            continue

        features = compute_item_features(image)
        item_ids.append(item.id)
        histograms.append(features.color_histogram)
        fingerprints.append(features.fingerprint)
        shapes.append(features.shape_vector)

        if (i + 1) % 500 == 0:
            logger.info(f"Processed {i + 1}/{len(items)} items")

    if not histograms:
        return {"success": False, "error": "No item images could be processed",
                "skipped": skipped, "errors": errors}

    hist_array = np.vstack(histograms).astype(np.float32)
    index = _build_faiss_index(np.sqrt(hist_array))

    faiss_path = os.path.join(output_dir, FAISS_FILENAME)
    faiss.write_index(index, faiss_path)

    np.save(os.path.join(output_dir, IDS_FILENAME), np.array(item_ids))
    np.savez_compressed(
        os.path.join(output_dir, FEATURES_FILENAME),
        histograms=hist_array,
        fingerprints=np.vstack(fingerprints).astype(np.uint8),
        shapes=np.vstack(shapes).astype(np.float32),
    )

    logger.info(
        f"Item index built: {len(item_ids)} items, {skipped} without image, "
        f"{errors} errors"
    )

    return {
        "success": True,
        "processed": len(item_ids),
        "skipped": skipped,
        "errors": errors,
        "vectors": int(index.ntotal),
        "dimensions": HIST_DIM,
        "index_path": faiss_path,
    }


def _build_faiss_index(vectors: np.ndarray) -> faiss.Index:
    dim = vectors.shape[1]
    if len(vectors) >= IVF_THRESHOLD:
        nlist = max(100, int(np.sqrt(len(vectors))))
        quantizer = faiss.IndexFlatL2(dim)
        index = faiss.IndexIVFFlat(quantizer, dim, nlist)
        index.train(vectors)
        index.add(vectors)
        logger.info(f"Built IVFFlat index: {nlist} clusters, {dim}d vectors")
    else:
        index = faiss.IndexFlatL2(dim)
        if len(vectors):
            index.add(vectors)
        logger.info(f"Built FlatL2 index: {dim}d vectors")
    return index


class ItemFeatureIndex:
    """
    Lookup of stored visual features by item id, plus nearest-neighbor
    search over item color histograms.
    """

    def __init__(self,
                 item_ids: List[str],
                 histograms: np.ndarray,
                 fingerprints: np.ndarray,
                 shapes: np.ndarray,
                 faiss_index: Optional[faiss.Index] = None,
                 nprobe: int = 20):
        if not (len(item_ids) == len(histograms) == len(fingerprints) == len(shapes)):
            raise ValueError("Item index arrays have mismatched lengths")
        if len(histograms) and histograms.shape[1] != HIST_DIM:
            raise ValueError(f"Histogram dimension {histograms.shape[1]} != {HIST_DIM}")

        self.item_ids = [str(i) for i in item_ids]
        self._positions: Dict[str, int] = {item_id: pos for pos, item_id in enumerate(self.item_ids)}
        self.histograms = histograms.astype(np.float32)
        self.fingerprints = fingerprints.astype(np.uint8)
        self.shapes = shapes.astype(np.float32)

        if faiss_index is None:
            faiss_index = _build_faiss_index(
                np.ascontiguousarray(np.sqrt(self.histograms.reshape(-1, HIST_DIM)))
            )
        self.faiss_index = faiss_index
        if hasattr(self.faiss_index, "nprobe"):
            self.faiss_index.nprobe = nprobe

    @classmethod
    def load(cls, index_dir: str, nprobe: int = 20) -> "ItemFeatureIndex":
        """Load an index written by build_item_index()."""
        faiss_index = faiss.read_index(os.path.join(index_dir, FAISS_FILENAME))
        item_ids = list(np.load(os.path.join(index_dir, IDS_FILENAME), allow_pickle=True))
        data = np.load(os.path.join(index_dir, FEATURES_FILENAME))

        index = cls(item_ids, data["histograms"], data["fingerprints"], data["shapes"],
                    faiss_index=faiss_index, nprobe=nprobe)
        logger.info(
            f"Loaded item index: {index.faiss_index.ntotal} vectors, "
            f"{index.faiss_index.d}d"
        )
        return index

    @classmethod
    def from_features(cls, features: Dict[str, ItemVisualFeatures]) -> "ItemFeatureIndex":
        """Build an in-memory index from already computed features."""
        ids = list(features)
        if not ids:
            return cls([], np.zeros((0, HIST_DIM), np.float32),
                       np.zeros((0, FINGERPRINT_BITS), np.uint8),
                       np.zeros((0, SHAPE_VECTOR_DIM), np.float32))
        return cls(
            ids,
            np.vstack([features[i].color_histogram for i in ids]),
            np.vstack([features[i].fingerprint for i in ids]),
            np.vstack([features[i].shape_vector for i in ids]),
        )

    def __len__(self) -> int:
        return len(self.item_ids)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._positions

    def get(self, item_id: str) -> Optional[ItemVisualFeatures]:
        pos = self._positions.get(item_id)
        if pos is None:
            return None
        return ItemVisualFeatures(
            color_histogram=self.histograms[pos],
            fingerprint=self.fingerprints[pos],
            shape_vector=self.shapes[pos],
        )

    def nearest(self, histogram: np.ndarray, k: int = 5) -> List[Tuple[str, float]]:
        """
        Items whose stored image has the most similar color histogram.

        Returns:
            (item_id, squared Hellinger-style L2 distance) pairs, closest
            first.
        """
        if histogram is None or self.faiss_index.ntotal == 0:
            return []

        query = np.sqrt(np.clip(np.asarray(histogram, dtype=np.float32), 0, None))
        query = query.reshape(1, -1)
        if query.shape[1] != self.faiss_index.d:
            raise ValueError(
                f"Query dimension {query.shape[1]} doesn't match "
                f"index dimension {self.faiss_index.d}"
            )

        k = min(k, self.faiss_index.ntotal)
        distances, indices = self.faiss_index.search(query, k)
        return [(self.item_ids[idx], float(dist))
                for dist, idx in zip(distances[0], indices[0])
                if 0 <= idx < len(self.item_ids)]
