"""Tests for local and remote feature extraction."""

import base64

import numpy as np
import pytest
import requests

from lostfound_search import extractors
from lostfound_search.errors import ImageLoadError, UnsupportedSourceError
from lostfound_search.extractors import (
    LocalHeuristicExtractor, RemoteVisionAPIExtractor, extract_features, merge_labels,
)


class FakeResponse:
    def __init__(self, body, status=200):
        self._body = body
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


VISION_RESPONSE = {
    "result": {
        "labelAnnotations": [
            {"description": "Mobile Phone", "score": 0.81},
            {"description": "Gadget", "score": 0.95},
        ],
        "localizedObjectAnnotations": [
            {"name": "Phone", "score": 0.70},
        ],
        "imagePropertiesAnnotation": {
            "dominantColors": {"colors": [
                {"color": {"red": 10, "green": 10, "blue": 12}, "score": 0.9},
                {"color": {"red": 250, "green": 250}, "score": 0.1},
            ]},
        },
    },
}


class TestMergeLabels:

    def test_order_and_dedup(self):
        assert merge_labels(["Black", "phone"], ["phone", "round"]) == ["black", "phone", "round"]

    def test_cap(self):
        assert merge_labels([str(i) for i in range(20)], max_labels=4) == ["0", "1", "2", "3"]

    def test_blank_labels_skipped(self):
        assert merge_labels(["", "  ", "Card"]) == ["card"]


class TestLocalHeuristicExtractor:
    """Tests for in-process extraction."""

    def test_black_image(self, black_image, png):
        features = extract_features(png(black_image))
        assert features.dominant_colors == [(0, 0, 0)]
        assert features.labels[0] == "black"
        assert "electronics" in features.labels
        assert features.source == "local"
        assert features.brightness == 0.0

    def test_label_invariants(self, noise_image, png):
        features = LocalHeuristicExtractor().extract(png(noise_image))
        assert len(features.labels) <= 10
        assert len(features.labels) == len(set(features.labels))
        assert all(label == label.lower() for label in features.labels)
        assert len(features.label_scores) == len(features.labels)
        assert len(features.color_scores) == len(features.dominant_colors)

    def test_shape_uses_native_aspect(self, png):
        wide = np.full((100, 300, 3), 255, dtype=np.uint8)
        features = extract_features(png(wide))
        assert features.shape_features.aspect_ratio == 3.0

    def test_texture_optional(self, red_square_image, png):
        data = png(red_square_image)
        assert LocalHeuristicExtractor().extract(data).texture_features is not None
        assert LocalHeuristicExtractor(with_texture=False).extract(data).texture_features is None

    def test_deterministic(self, noise_image, png):
        data = png(noise_image)
        first = extract_features(data)
        second = extract_features(data)
        assert first.dominant_colors == second.dominant_colors
        assert first.labels == second.labels
        assert first.shape_features == second.shape_features
        assert np.array_equal(first.fingerprint, second.fingerprint)

    def test_transparent_image(self, transparent_image, png):
        features = extract_features(png(transparent_image))
        assert features.dominant_colors == []
        assert not any(name in features.labels for name in ("red", "black"))

    def test_histogram_attached(self, red_square_image, png):
        features = extract_features(png(red_square_image))
        assert features.color_histogram is not None
        assert abs(float(features.color_histogram.sum()) - 1.0) < 1e-4

    def test_non_image_bytes(self):
        with pytest.raises(ImageLoadError):
            extract_features(b"hello, I am definitely not a picture")

    def test_unsupported_source(self):
        with pytest.raises(UnsupportedSourceError):
            extract_features(12345)

    def test_to_dict(self, red_square_image, png):
        data = extract_features(png(red_square_image)).to_dict()
        assert data["dominantColors"][0] == [255, 255, 255]
        assert "shapeFeatures" in data
        assert len(data["fingerprint"]) == 256


class TestRemoteVisionAPIExtractor:
    """Tests for the hosted vision endpoint variant."""

    def test_requires_endpoint(self, monkeypatch):
        monkeypatch.setattr(extractors, "VISION_API_URL", None)
        with pytest.raises(ValueError):
            RemoteVisionAPIExtractor()

    def test_endpoint_from_environment(self, monkeypatch):
        monkeypatch.setattr(extractors, "VISION_API_URL", "https://vision.example/annotate")
        assert RemoteVisionAPIExtractor().endpoint == "https://vision.example/annotate"

    def test_labels_and_colors(self, monkeypatch, black_image, png):
        data = png(black_image)
        calls = []

        def fake_post(url, json=None, timeout=None):
            calls.append((url, json))
            return FakeResponse(VISION_RESPONSE)

        monkeypatch.setattr(extractors.requests, "post", fake_post)
        features = RemoteVisionAPIExtractor("https://vision.example/annotate").extract(data)

        assert calls[0][0] == "https://vision.example/annotate"
        assert base64.b64decode(calls[0][1]["image"]) == data
        assert features.labels == ["gadget", "mobile phone", "phone", "black", "yellow"]
        assert features.label_scores[:3] == [0.95, 0.81, 0.70]
        assert features.dominant_colors == [(10, 10, 12), (250, 250, 0)]
        assert features.source == "remote"
        assert features.shape_features.aspect_ratio == 1.0

    def test_falls_back_to_local_colors(self, monkeypatch, black_image, png):
        monkeypatch.setattr(extractors.requests, "post",
                            lambda url, json=None, timeout=None: FakeResponse(
                                {"labelAnnotations": [{"description": "Wallet", "score": 0.9}]}))
        features = RemoteVisionAPIExtractor("http://vision").extract(png(black_image))
        assert features.dominant_colors == [(0, 0, 0)]
        assert features.labels == ["wallet", "black"]

    def test_connection_error(self, monkeypatch, black_image, png):
        def fake_post(url, json=None, timeout=None):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(extractors.requests, "post", fake_post)
        with pytest.raises(ImageLoadError):
            RemoteVisionAPIExtractor("http://vision").extract(png(black_image))

    def test_invalid_json(self, monkeypatch, black_image, png):
        monkeypatch.setattr(extractors.requests, "post",
                            lambda url, json=None, timeout=None: FakeResponse(ValueError("bad")))
        with pytest.raises(ImageLoadError):
            RemoteVisionAPIExtractor("http://vision").extract(png(black_image))

    @pytest.mark.parametrize("body", [
        {"labelAnnotations": [{"description": "wallet", "score": "high"}]},
        {"labelAnnotations": ["wallet"]},
        {"localizedObjectAnnotations": "phone"},
        {"imagePropertiesAnnotation": {"dominantColors": {"colors": [{"color": {"red": "dark"}}]}}},
        {"imagePropertiesAnnotation": ["not", "a", "dict"]},
    ])
    def test_malformed_annotations(self, monkeypatch, black_image, png, body):
        monkeypatch.setattr(extractors.requests, "post",
                            lambda url, json=None, timeout=None: FakeResponse(body))
        with pytest.raises(ImageLoadError, match="malformed"):
            RemoteVisionAPIExtractor("http://vision").extract(png(black_image))

    def test_garbage_never_sent(self, monkeypatch):
        calls = []
        monkeypatch.setattr(extractors.requests, "post",
                            lambda *args, **kwargs: calls.append(args))
        with pytest.raises(ImageLoadError):
            RemoteVisionAPIExtractor("http://vision").extract(b"not an image")
        assert calls == []
