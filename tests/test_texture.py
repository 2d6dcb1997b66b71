"""Tests for texture heuristics."""

import numpy as np

from lostfound_search.models import TextureFeatures
from lostfound_search.texture import compute_texture_features, texture_labels


class TestComputeTextureFeatures:

    def test_flat_image(self):
        flat = np.full((64, 64, 3), 120, dtype=np.uint8)
        texture = compute_texture_features(flat)
        assert texture == TextureFeatures(0.0, 0.0, 0.0, 0.0, 0.0)
        assert "smooth" in texture_labels(texture)

    def test_values_in_unit_range(self, noise_image, textured_image, red_square_image):
        for img in (noise_image, textured_image, red_square_image):
            for value in compute_texture_features(img).as_dict().values():
                assert 0.0 <= value <= 1.0

    def test_checkerboard_more_regular_than_noise(self, textured_image, noise_image):
        checker = compute_texture_features(textured_image)
        noise = compute_texture_features(noise_image)
        assert checker.regularity > noise.regularity

    def test_vertical_stripes_are_directional(self):
        img = np.zeros((64, 64, 3), dtype=np.uint8)
        img[:, ::8] = 255
        img[:, 1::8] = 255
        img[:, 2::8] = 255
        img[:, 3::8] = 255
        assert compute_texture_features(img).directionality > 0.9

    def test_noise_has_contrast_and_roughness(self):
        rng = np.random.RandomState(7)
        noise = rng.randint(0, 256, (64, 64, 3), dtype=np.uint8)
        texture = compute_texture_features(noise)
        assert texture.contrast > 0.4
        assert texture.roughness > 0.5


class TestTextureLabels:

    def test_coarse(self):
        labels = texture_labels(TextureFeatures(0.9, 0.5, 0.5, 0.5, 0.5))
        assert labels == ["textured", "rough", "fabric", "textile", "leather"]

    def test_patterned(self):
        labels = texture_labels(TextureFeatures(0.5, 0.8, 0.5, 0.5, 0.8))
        assert labels == ["high contrast", "patterned", "regular pattern", "symmetrical"]

    def test_neutral(self):
        assert texture_labels(TextureFeatures(0.5, 0.5, 0.5, 0.5, 0.5)) == []
