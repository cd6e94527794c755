# Mask-guided compositing
"""
Blends a blurred rendition back into the sharp original, weighted per pixel by
the alpha plane of a painted mask. Used by the soft blur effect, the doodle
overlay and the content-fill fallback.
"""

from typing import Optional, Tuple

import numpy as np

from ..config import settings
from ..utils.errors import BufferMismatchError
from ..utils.logger import get_logger
from .buffers import BufferPool, BufferRole, PixelBuffer, check_same_size, ensure_rgba
from .operators import gaussian_blur

logger = get_logger(__name__)

MASK_RADIUS_MIN = 1.0
MASK_RADIUS_MAX = 25.0


def clamp_mask_radius(radius: float) -> float:
    return min(max(float(radius), MASK_RADIUS_MIN), MASK_RADIUS_MAX)


def composite(
    src: PixelBuffer,
    blurred: PixelBuffer,
    mask: PixelBuffer,
    dst: PixelBuffer,
) -> PixelBuffer:
    """
    ``dst = lerp(src, blurred, mask.alpha / 255)`` per RGB channel, truncated.

    Where mask alpha is 0 the source pixel is copied verbatim and where it is
    255 the blurred pixel is. Alpha is carried over from ``src``. ``dst`` may
    alias any of the inputs.
    """
    check_same_size("composite", src, blurred, mask, dst)

    alpha = mask.data[..., 3]
    weight = alpha[..., np.newaxis].astype(np.float32) / 255.0
    s = src.data[..., :3].astype(np.float32)
    b = blurred.data[..., :3].astype(np.float32)

    mixed = s + (b - s) * weight
    rgb = np.where((alpha == 0)[..., np.newaxis], src.data[..., :3], mixed.astype(np.uint8))
    src_alpha = src.data[..., 3].copy()

    dst.data[..., :3] = rgb
    dst.data[..., 3] = src_alpha
    return dst


def doodle_overlay(src: PixelBuffer, mask: PixelBuffer, dst: PixelBuffer) -> PixelBuffer:
    """Copy mask RGB verbatim wherever mask alpha > 0; elsewhere keep ``src``."""
    check_same_size("doodle", src, mask, dst)
    painted = (mask.data[..., 3] > 0)[..., np.newaxis]
    rgb = np.where(painted, mask.data[..., :3], src.data[..., :3])
    src_alpha = src.data[..., 3].copy()
    dst.data[..., :3] = rgb
    dst.data[..., 3] = src_alpha
    return dst


def mask_preview(
    image: np.ndarray,
    mask: np.ndarray,
    color: Optional[Tuple[int, int, int]] = None,
    opacity: Optional[int] = None,
) -> np.ndarray:
    """
    Tint the painted area of ``mask`` over ``image`` for display.

    Coverage is scaled by both the overlay opacity (0-255) and the mask alpha.
    """
    color = color if color is not None else settings.MASK_DEFAULTS["overlay_color"]
    opacity = opacity if opacity is not None else settings.MASK_DEFAULTS["overlay_alpha"]

    image = ensure_rgba(image)
    mask = ensure_rgba(mask)
    if image.shape[:2] != mask.shape[:2]:
        raise BufferMismatchError(
            "mask_preview: mask does not match image",
            expected=(image.shape[1], image.shape[0]),
            actual=(mask.shape[1], mask.shape[0]),
        )

    weight = (mask[..., 3:4].astype(np.float32) / 255.0) * (opacity / 255.0)
    base = image[..., :3].astype(np.float32)
    tint = np.array(color, dtype=np.float32).reshape(1, 1, 3)

    out = image.copy()
    out[..., :3] = np.clip(base + (tint - base) * weight, 0, 255).astype(np.uint8)
    return out


class MaskCompositor:
    """
    Array-level entry points for the mask effects, backed by a session pool.

    Pool roles: INPUT holds the source, SCRATCH_1 the blurred copy,
    SCRATCH_2 the mask and OUTPUT the result.
    """

    def __init__(self, pool: Optional[BufferPool] = None):
        self._pool = pool if pool is not None else BufferPool()

    @property
    def pool(self) -> BufferPool:
        return self._pool

    def _load(self, image: np.ndarray, mask: np.ndarray):
        image = ensure_rgba(image)
        mask = ensure_rgba(mask)
        height, width = image.shape[:2]
        src = self._pool.acquire(BufferRole.INPUT, width, height)
        src.load(image)
        mask_buffer = self._pool.acquire(BufferRole.SCRATCH_2, width, height)
        mask_buffer.load(mask)
        dst = self._pool.acquire(BufferRole.OUTPUT, width, height)
        return src, mask_buffer, dst

    def soft_blur(self, image: np.ndarray, mask: np.ndarray, radius: float) -> np.ndarray:
        """Blur at ``radius`` (clamped to [1, 25]) and composite through the mask."""
        radius = clamp_mask_radius(radius)
        src, mask_buffer, dst = self._load(image, mask)
        blurred = self._pool.acquire(BufferRole.SCRATCH_1, src.width, src.height)
        gaussian_blur(src, blurred, radius)
        composite(src, blurred, mask_buffer, dst)
        logger.debug("Soft blur %dx%d at radius %.1f", src.width, src.height, radius)
        return dst.to_array()

    def doodle(self, image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        src, mask_buffer, dst = self._load(image, mask)
        doodle_overlay(src, mask_buffer, dst)
        return dst.to_array()
