"""Tests for the per-item visual feature index."""

import os

import numpy as np
import pytest

from lostfound_search.catalog import InMemoryCatalog
from lostfound_search.colors import HIST_DIM
from lostfound_search.engine import SearchEngine
from lostfound_search.index_builder import (
    FAISS_FILENAME, FEATURES_FILENAME, IDS_FILENAME,
    ItemFeatureIndex, build_item_index, compute_item_features,
)
from lostfound_search.models import CatalogItem


@pytest.fixture
def catalog_with_images(tmp_path, png, red_square_image, blue_circle_image):
    """Catalog whose items point at images on disk (relative paths)."""
    images = tmp_path / "images"
    images.mkdir()
    (images / "red.png").write_bytes(png(red_square_image))
    (images / "blue.png").write_bytes(png(blue_circle_image))

    items = [
        CatalogItem(id="red", title="Qqq", image="red.png"),
        CatalogItem(id="blue", title="Zzz", image="blue.png"),
        CatalogItem(id="noimg", title="Keys"),
        CatalogItem(id="broken", title="Bag", image="missing.png"),
    ]
    return items, str(images)


class TestBuildItemIndex:

    def test_build_summary(self, tmp_path, catalog_with_images):
        items, root = catalog_with_images
        out = tmp_path / "index"
        summary = build_item_index(items, str(out), image_root=root)

        assert summary["success"]
        assert summary["processed"] == 2
        assert summary["skipped"] == 1
        assert summary["errors"] == 1
        assert summary["vectors"] == 2
        assert summary["dimensions"] == HIST_DIM
        for name in (FAISS_FILENAME, IDS_FILENAME, FEATURES_FILENAME):
            assert os.path.exists(out / name)

    def test_nothing_to_index(self, tmp_path):
        summary = build_item_index([CatalogItem(id="x")], str(tmp_path / "index"))
        assert not summary["success"]
        assert summary["skipped"] == 1


class TestItemFeatureIndex:

    def test_load_and_lookup(self, tmp_path, catalog_with_images):
        items, root = catalog_with_images
        build_item_index(items, str(tmp_path / "index"), image_root=root)
        index = ItemFeatureIndex.load(str(tmp_path / "index"))

        assert len(index) == 2
        assert "red" in index
        assert "noimg" not in index
        assert index.get("noimg") is None

        red = index.get("red")
        assert red.color_histogram.shape == (HIST_DIM,)
        assert red.fingerprint.shape == (256,)

    def test_nearest_returns_self_first(self, tmp_path, catalog_with_images,
                                        red_square_image, blue_circle_image):
        items, root = catalog_with_images
        build_item_index(items, str(tmp_path / "index"), image_root=root)
        index = ItemFeatureIndex.load(str(tmp_path / "index"))

        red = compute_item_features(red_square_image)
        neighbors = index.nearest(red.color_histogram, k=5)
        assert [item_id for item_id, _ in neighbors] == ["red", "blue"]
        assert neighbors[0][1] == pytest.approx(0.0, abs=1e-4)

        blue = compute_item_features(blue_circle_image)
        assert index.nearest(blue.color_histogram, k=1)[0][0] == "blue"

    def test_dimension_mismatch(self, red_square_image):
        index = ItemFeatureIndex.from_features({"a": compute_item_features(red_square_image)})
        with pytest.raises(ValueError):
            index.nearest(np.ones(10, dtype=np.float32))

    def test_empty_index(self):
        index = ItemFeatureIndex.from_features({})
        assert len(index) == 0
        assert index.nearest(np.ones(HIST_DIM, dtype=np.float32)) == []

    def test_visual_scores_break_text_ties(self, png, red_square_image, blue_circle_image):
        index = ItemFeatureIndex.from_features({
            "blue": compute_item_features(blue_circle_image),
            "red": compute_item_features(red_square_image),
        })
        catalog = InMemoryCatalog([
            CatalogItem(id="blue", title="Zzz"),
            CatalogItem(id="red", title="Qqq"),
        ])
        engine = SearchEngine(catalog, item_index=index)

        result = engine.search(png(red_square_image))
        assert result.results[0].item.id == "red"
        assert result.results[0].breakdown["feature"] == pytest.approx(1.0)
        assert result.visual_neighbors[0][0] == "red"
