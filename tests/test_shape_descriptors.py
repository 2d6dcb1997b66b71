"""Tests for shape metrics, shape labels and shape vectors."""

import numpy as np
import cv2

from lostfound_search.models import ShapeFeatures
from lostfound_search.shape_descriptors import (
    SHAPE_VECTOR_DIM, compare_shape_vectors, compute_shape_features,
    shape_labels, shape_vector,
)


def _shape(aspect_ratio=1.0, complexity=0.5, **overrides):
    """Build ShapeFeatures with aspect-derived metrics and custom overrides."""
    values = dict(
        aspect_ratio=aspect_ratio,
        rectangularity=min(1.0, max(0.5, 1.0 - abs(aspect_ratio - 1.5) / 2.0)),
        roundness=min(1.0, max(0.0, 1.0 - abs(aspect_ratio - 1.0) * 2.0)),
        squareness=min(1.0, max(0.0, 1.0 - abs(aspect_ratio - 1.0) * 3.0)),
        symmetry=1.0,
        compactness=0.5,
        complexity=complexity,
    )
    values.update(overrides)
    return ShapeFeatures(**values)


class TestComputeShapeFeatures:
    """Tests for aspect-derived and image-derived metrics."""

    def test_square_image(self, red_square_image):
        shape = compute_shape_features(red_square_image)
        assert shape.aspect_ratio == 1.0
        assert shape.roundness == 1.0
        assert shape.squareness == 1.0
        assert shape.rectangularity == 0.75

    def test_three_by_two_image(self):
        img = np.full((200, 300, 3), 255, dtype=np.uint8)
        shape = compute_shape_features(img)
        assert shape.aspect_ratio == 1.5
        assert shape.rectangularity == 1.0
        assert shape.roundness == 0.0
        assert shape.squareness == 0.0

    def test_rectangularity_floor(self):
        img = np.zeros((10, 100, 3), dtype=np.uint8)
        assert compute_shape_features(img).rectangularity == 0.5

    def test_symmetric_image(self, red_square_image):
        assert compute_shape_features(red_square_image).symmetry == 1.0

    def test_asymmetric_image(self):
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        img[:, :50] = 255
        assert compute_shape_features(img).symmetry < 0.1

    def test_blank_image_is_simple(self, black_image):
        shape = compute_shape_features(black_image)
        assert shape.complexity == 0.0
        assert shape.compactness == 0.5
        assert "simple" in shape_labels(shape)

    def test_circle_more_compact_than_square(self, red_square_image, blue_circle_image):
        square = compute_shape_features(red_square_image)
        circle = compute_shape_features(blue_circle_image)
        assert circle.compactness > square.compactness

    def test_noise_is_complex(self, noise_image):
        assert compute_shape_features(noise_image).complexity > 0.8

    def test_metrics_in_unit_range(self, noise_image, textured_image):
        for img in (noise_image, textured_image):
            shape = compute_shape_features(img)
            for name, value in shape.as_dict().items():
                if name != "aspectRatio":
                    assert 0.0 <= value <= 1.0, name

    def test_transparent_foreground_uses_alpha(self):
        img = np.zeros((200, 200, 4), dtype=np.uint8)
        cv2.circle(img, (100, 100), 70, (0, 0, 0, 255), -1)
        assert compute_shape_features(img).compactness > 0.8

    def test_deterministic(self, noise_image):
        assert compute_shape_features(noise_image) == compute_shape_features(noise_image)


class TestShapeLabels:
    """Tests for label rules."""

    def test_elongated_card(self):
        labels = shape_labels(_shape(aspect_ratio=3.5))
        assert "card" in labels
        assert "id card" in labels

    def test_phone_shaped(self):
        labels = shape_labels(_shape(aspect_ratio=1.8))
        assert "phone" in labels
        assert "smartphone" in labels

    def test_book_shaped(self):
        labels = shape_labels(_shape(aspect_ratio=1.4))
        assert "book" in labels
        assert "phone" not in labels

    def test_round(self):
        assert "round" in shape_labels(_shape(aspect_ratio=1.0))

    def test_complex(self):
        labels = shape_labels(_shape(aspect_ratio=1.4, complexity=0.9))
        assert "complex" in labels
        assert "simple" not in labels

    def test_mid_complexity_adds_nothing(self):
        assert shape_labels(_shape(aspect_ratio=0.5, complexity=0.5)) == []


class TestShapeVector:
    """Tests for vector packing and comparison."""

    def test_vector_length(self, red_square_image):
        vec = shape_vector(compute_shape_features(red_square_image))
        assert vec.shape == (SHAPE_VECTOR_DIM,)
        assert vec.dtype == np.float32

    def test_identical_vectors(self, red_square_image):
        vec = shape_vector(compute_shape_features(red_square_image))
        assert compare_shape_vectors(vec, vec) == 1.0

    def test_different_vectors_lower(self):
        a = shape_vector(_shape(aspect_ratio=1.0))
        b = shape_vector(_shape(aspect_ratio=3.0))
        assert compare_shape_vectors(a, b) < 1.0

    def test_wrong_dimension(self):
        assert compare_shape_vectors(np.zeros(3), np.zeros(SHAPE_VECTOR_DIM)) == 0.0
        assert compare_shape_vectors(None, np.zeros(SHAPE_VECTOR_DIM)) == 0.0
