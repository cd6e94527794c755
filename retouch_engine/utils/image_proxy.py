# Image proxy/preview resolution management
"""
Provides proxy image generation for bounded working and preview resolutions.

This module handles:
- Downscaling sources to the working (export) and preview side limits
- Exact resizes used by the content-fill model path
- Scaling down for the out-of-memory retry
"""

import numpy as np
import cv2
from typing import Tuple
from dataclasses import dataclass

from ..config import settings
from .logger import get_logger

logger = get_logger(__name__)


DEFAULT_WORKING_MAX_SIDE = settings.RESOLUTION_DEFAULTS["max_working_side"]
DEFAULT_PREVIEW_MAX_SIDE = settings.RESOLUTION_DEFAULTS["max_preview_side"]


@dataclass
class ImageProxyInfo:
    """Information about a proxy image."""
    original_shape: Tuple[int, ...]
    proxy_shape: Tuple[int, ...]
    scale_factor: float
    is_proxy: bool

    @property
    def original_megapixels(self) -> float:
        """Original image size in megapixels."""
        return (self.original_shape[0] * self.original_shape[1]) / 1_000_000

    @property
    def proxy_megapixels(self) -> float:
        """Proxy image size in megapixels."""
        return (self.proxy_shape[0] * self.proxy_shape[1]) / 1_000_000


def estimate_memory_usage(image: np.ndarray) -> float:
    """
    Estimate memory usage of an image in MB.

    Args:
        image: NumPy array image.

    Returns:
        Estimated memory usage in megabytes.
    """
    if image is None:
        return 0.0
    return image.nbytes / (1024 * 1024)


def calculate_scale_factor(image: np.ndarray, max_side: int) -> float:
    """
    Calculate the scale factor needed to fit the longest side within max_side.

    Returns:
        Scale factor (1.0 if no scaling needed, <1.0 for downscaling).
    """
    if image is None or image.ndim < 2:
        return 1.0
    longest = max(image.shape[0], image.shape[1])
    if longest <= max_side or longest == 0:
        return 1.0
    return max_side / float(longest)


def resize_exact(
    image: np.ndarray,
    width: int,
    height: int,
    interpolation: int = cv2.INTER_LINEAR,
) -> np.ndarray:
    """Resize to exactly width x height (bilinear by default), returning a contiguous array."""
    if image.shape[1] == width and image.shape[0] == height:
        return image.copy()
    resized = cv2.resize(image, (int(width), int(height)), interpolation=interpolation)
    return np.ascontiguousarray(resized)


def scale_image(
    image: np.ndarray,
    scale: float,
    interpolation: int = cv2.INTER_AREA,
) -> np.ndarray:
    """Scale an image by a factor, keeping at least 1x1 pixels."""
    new_height = max(1, int(image.shape[0] * scale))
    new_width = max(1, int(image.shape[1] * scale))
    return resize_exact(image, new_width, new_height, interpolation=interpolation)


def create_proxy(
    image: np.ndarray,
    max_side: int = DEFAULT_PREVIEW_MAX_SIDE,
    interpolation: int = cv2.INTER_AREA,
) -> Tuple[np.ndarray, ImageProxyInfo]:
    """
    Create a proxy (downscaled) version of an image.

    Args:
        image: Input image (uint8 RGBA).
        max_side: Maximum length of the longest side.
        interpolation: OpenCV interpolation method.

    Returns:
        Tuple of (proxy_image, proxy_info).
    """
    if image is None or image.size == 0:
        info = ImageProxyInfo(
            original_shape=(0, 0, 0),
            proxy_shape=(0, 0, 0),
            scale_factor=1.0,
            is_proxy=False,
        )
        return image, info

    original_shape = image.shape
    scale = calculate_scale_factor(image, max_side)

    if scale >= 1.0:
        info = ImageProxyInfo(
            original_shape=original_shape,
            proxy_shape=original_shape,
            scale_factor=1.0,
            is_proxy=False,
        )
        return image, info

    proxy = scale_image(image, scale, interpolation=interpolation)

    info = ImageProxyInfo(
        original_shape=original_shape,
        proxy_shape=proxy.shape,
        scale_factor=scale,
        is_proxy=True,
    )

    logger.debug(
        "Created proxy: %.1f MP -> %.1f MP (scale=%.3f)",
        info.original_megapixels,
        info.proxy_megapixels,
        scale,
    )

    return proxy, info

