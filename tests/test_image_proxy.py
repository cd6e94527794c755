"""Tests for proxy resolution helpers and crop/rotate geometry."""

import numpy as np
import pytest
from retouch_engine.utils.image_proxy import (
    ImageProxyInfo,
    calculate_scale_factor,
    create_proxy,
    estimate_memory_usage,
    resize_exact,
    scale_image,
)
from retouch_engine.utils.geometry import (
    ASPECT_RATIOS,
    CropRect,
    center_crop_rect,
    crop_image,
    find_aspect_ratio,
    normalized_to_rect,
    rotate_90,
)


class TestImageProxyInfo:
    """Tests for ImageProxyInfo dataclass."""

    def test_megapixels_calculation(self):
        """Should calculate megapixels correctly."""
        info = ImageProxyInfo(
            original_shape=(2000, 3000, 4),
            proxy_shape=(1000, 1500, 4),
            scale_factor=0.5,
            is_proxy=True,
        )
        assert info.original_megapixels == 6.0
        assert info.proxy_megapixels == 1.5


class TestProxyFunctions:
    """Tests for scaling helpers."""

    def test_estimate_memory_usage(self):
        """100x100x4 uint8 is ~0.04 MB."""
        img = np.zeros((100, 100, 4), dtype=np.uint8)
        assert 0.03 < estimate_memory_usage(img) < 0.05

    def test_estimate_memory_usage_none(self):
        assert estimate_memory_usage(None) == 0.0

    def test_scale_factor_no_scaling(self):
        img = np.zeros((100, 200, 4), dtype=np.uint8)
        assert calculate_scale_factor(img, 500) == 1.0

    def test_scale_factor_downscale(self):
        img = np.zeros((200, 400, 4), dtype=np.uint8)
        assert calculate_scale_factor(img, 100) == pytest.approx(0.25)

    def test_create_proxy_small_image_passthrough(self):
        img = np.zeros((50, 80, 4), dtype=np.uint8)
        proxy, info = create_proxy(img, max_side=100)
        assert proxy is img
        assert not info.is_proxy

    def test_create_proxy_bounds_longest_side(self):
        img = np.zeros((200, 400, 4), dtype=np.uint8)
        proxy, info = create_proxy(img, max_side=100)
        assert proxy.shape == (50, 100, 4)
        assert info.is_proxy
        assert info.scale_factor == pytest.approx(0.25)

    def test_resize_exact(self):
        img = np.zeros((30, 40, 4), dtype=np.uint8)
        assert resize_exact(img, 512, 512).shape == (512, 512, 4)
        same = resize_exact(img, 40, 30)
        assert same is not img
        assert same.shape == img.shape

    def test_scale_image_half(self):
        img = np.zeros((100, 60, 4), dtype=np.uint8)
        assert scale_image(img, 0.5).shape == (50, 30, 4)

    def test_scale_image_keeps_one_pixel(self):
        img = np.zeros((3, 3, 4), dtype=np.uint8)
        assert scale_image(img, 0.01).shape == (1, 1, 4)


class TestGeometry:
    """Tests for crop rectangles and quarter turns."""

    def test_center_crop_rect_wide_source(self):
        assert center_crop_rect(1600, 900, 1.0) == CropRect(350, 0, 900, 900)

    def test_center_crop_rect_tall_source(self):
        rect = center_crop_rect(900, 1600, 4 / 3)
        assert rect.width == 900
        assert rect.height == 675

    def test_center_crop_rect_same_ratio(self):
        assert center_crop_rect(400, 300, 4 / 3) == CropRect(0, 0, 400, 300)

    def test_aspect_ratio_constrain(self):
        rect = ASPECT_RATIOS["1:1"].constrain(CropRect(10, 10, 200, 100))
        assert rect == CropRect(60, 10, 100, 100)

    def test_find_aspect_ratio(self):
        assert find_aspect_ratio(16 / 9).token_suffix == "16_9"
        assert find_aspect_ratio(2.5) is None

    def test_normalized_to_rect(self):
        assert normalized_to_rect(0.0, 0.0, 0.5, 1.0, 100, 50) == CropRect(0, 0, 50, 50)

    def test_normalized_tiny_rect_covers_a_pixel(self):
        rect = normalized_to_rect(0.5, 0.5, 0.5001, 0.5001, 10, 10)
        assert rect.width >= 1 and rect.height >= 1

    def test_crop_image_is_contiguous_copy(self):
        img = np.zeros((10, 10, 4), dtype=np.uint8)
        out = crop_image(img, CropRect(2, 2, 4, 4))
        out[:] = 1
        assert not img.any()
        assert out.flags["C_CONTIGUOUS"]

    def test_rotate_directions_invert(self):
        img = np.arange(2 * 3 * 4, dtype=np.uint8).reshape(2, 3, 4)
        assert np.array_equal(rotate_90(rotate_90(img, clockwise=True), clockwise=False), img)
