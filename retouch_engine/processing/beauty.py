# Beauty pipeline: smooth -> sharpen -> color
"""
Skin smoothing, sharpening and whiten/ruddy color in a fixed stage order.

Slider values are turned into algorithm parameters by the named mapping
functions below so they can be checked without any UI. A zero parameter
skips its stage entirely.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import settings
from ..utils.logger import get_logger
from .buffers import BufferPool, PingPong, RenderResult
from .color_matrix import ColorMatrix, brightness, compose, saturation
from .operators import apply_color_matrix, clamp_blur_radius, convolve3x3, gaussian_blur

logger = get_logger(__name__)

_DEFAULTS = settings.PIPELINE_DEFAULTS


def _clamp(value: float, bounds) -> float:
    low, high = bounds
    return min(max(float(value), low), high)


@dataclass(frozen=True)
class BeautyParams:
    """Beauty slider values: smooth [0,10], whiten [0,1], ruddy [0,1], sharpen [0,4]."""
    smooth: float = 0.0
    whiten: float = 0.0
    ruddy: float = 0.0
    sharpen: float = 0.0

    @classmethod
    def defaults(cls) -> 'BeautyParams':
        """The "auto beauty" preset."""
        return cls(
            smooth=_DEFAULTS["default_smooth"],
            whiten=_DEFAULTS["default_whiten"],
            ruddy=_DEFAULTS["default_ruddy"],
            sharpen=_DEFAULTS["default_sharpen"],
        )

    def clamped(self) -> 'BeautyParams':
        return BeautyParams(
            smooth=_clamp(self.smooth, _DEFAULTS["smooth_range"]),
            whiten=_clamp(self.whiten, _DEFAULTS["whiten_range"]),
            ruddy=_clamp(self.ruddy, _DEFAULTS["ruddy_range"]),
            sharpen=_clamp(self.sharpen, _DEFAULTS["sharpen_range"]),
        )

    @property
    def is_noop(self) -> bool:
        p = self.clamped()
        return p.smooth == 0 and p.whiten == 0 and p.ruddy == 0 and p.sharpen == 0


def smooth_to_blur_radius(smooth: float) -> float:
    """radius = clamp(smooth * 2.5, 0.1, 25)."""
    return clamp_blur_radius(smooth * _DEFAULTS["smooth_radius_factor"])


def sharpen_to_kernel(sharpen: float) -> np.ndarray:
    """Cross-shaped kernel with a = sharpen * 0.2; the weights sum to 1."""
    a = float(sharpen) * _DEFAULTS["sharpen_factor"]
    return np.array(
        [
            [0.0, -a, 0.0],
            [-a, 1.0 + 4.0 * a, -a],
            [0.0, -a, 0.0],
        ],
        dtype=np.float32,
    )


def ruddy_to_saturation(ruddy: float) -> float:
    return 1.0 + float(ruddy) * _DEFAULTS["ruddy_saturation_factor"]


def whiten_to_brightness(whiten: float) -> float:
    return 1.0 + float(whiten) * _DEFAULTS["whiten_brightness_factor"]


def beauty_color_matrix(whiten: float, ruddy: float) -> ColorMatrix:
    """Saturation first, brightness second."""
    return compose(saturation(ruddy_to_saturation(ruddy)), brightness(whiten_to_brightness(whiten)))


class BeautyPipeline:
    """Runs the beauty stages over a session's buffer pool."""

    def __init__(self, pool: Optional[BufferPool] = None):
        self._pool = pool if pool is not None else BufferPool()

    @property
    def pool(self) -> BufferPool:
        return self._pool

    def render(self, source: np.ndarray, params: BeautyParams) -> RenderResult:
        """
        Render ``source`` with ``params``.

        Output is a pure function of (source, params): identical inputs give
        byte-identical results.
        """
        params = params.clamped()
        runner = PingPong(self._pool, source)

        if params.smooth > 0:
            runner.run("smooth", gaussian_blur, smooth_to_blur_radius(params.smooth))
        else:
            runner.skip("smooth")

        if params.sharpen > 0:
            runner.run("sharpen", convolve3x3, sharpen_to_kernel(params.sharpen))
        else:
            runner.skip("sharpen")

        if params.whiten > 0 or params.ruddy > 0:
            runner.run("color", apply_color_matrix, beauty_color_matrix(params.whiten, params.ruddy))
        else:
            runner.skip("color")

        result = runner.result()
        logger.debug(
            "Beauty %dx%d: stages=%s in %.3fs",
            result.width, result.height, result.stages_executed, result.total_time,
        )
        return result
