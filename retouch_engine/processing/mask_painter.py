# Brush painting onto RGBA masks
"""
Brush strokes for the erase, soft blur and doodle tools.

A mask is an (H, W, 4) uint8 array; its alpha plane carries coverage. Dabs are
filled circles softened by a Gaussian feather and merged with ``max`` so that
painting over an area never lowers its coverage.
"""

from typing import Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

BRUSH_RADIUS_MIN = settings.MASK_DEFAULTS["brush_radius_min"]
BRUSH_RADIUS_MAX = settings.MASK_DEFAULTS["brush_radius_max"]
FEATHER_MAX = settings.MASK_DEFAULTS["feather_max"]

Point = Tuple[float, float]


def new_mask(width: int, height: int) -> np.ndarray:
    """Fully transparent mask."""
    return np.zeros((height, width, 4), dtype=np.uint8)


def clear_mask(mask: np.ndarray) -> np.ndarray:
    mask[...] = 0
    return mask


def is_empty(mask: np.ndarray) -> bool:
    return not bool(np.any(mask[..., 3]))


def coverage(mask: np.ndarray) -> float:
    """Fraction of pixels with any coverage."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask[..., 3])) / (mask.shape[0] * mask.shape[1])


def clamp_brush(radius: float, feather: float) -> Tuple[float, float]:
    radius = min(max(float(radius), BRUSH_RADIUS_MIN), BRUSH_RADIUS_MAX)
    feather = min(max(float(feather), 0.0), FEATHER_MAX)
    return radius, feather


def _feather_sigma(feather: float) -> float:
    # Blur-radius to sigma conversion used for soft brush edges
    return feather * 0.57735 + 0.5


def _stamp(
    mask: np.ndarray,
    points: Sequence[Point],
    radius: float,
    feather: float,
    color: Tuple[int, int, int],
) -> np.ndarray:
    height, width = mask.shape[:2]
    margin = int(np.ceil(radius + 3 * _feather_sigma(feather))) + 1 if feather > 0 else int(np.ceil(radius)) + 1

    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    x0 = max(0, int(np.floor(min(xs))) - margin)
    y0 = max(0, int(np.floor(min(ys))) - margin)
    x1 = min(width, int(np.ceil(max(xs))) + margin + 1)
    y1 = min(height, int(np.ceil(max(ys))) + margin + 1)
    if x0 >= x1 or y0 >= y1:
        return mask

    layer = np.zeros((y1 - y0, x1 - x0), dtype=np.uint8)
    local = [(int(round(x - x0)), int(round(y - y0))) for x, y in points]
    r = max(1, int(round(radius)))
    for i, center in enumerate(local):
        cv2.circle(layer, center, r, 255, thickness=-1, lineType=cv2.LINE_AA)
        if i > 0:
            cv2.line(layer, local[i - 1], center, 255, thickness=2 * r, lineType=cv2.LINE_AA)

    if feather > 0:
        sigma = _feather_sigma(feather)
        layer = cv2.GaussianBlur(layer, (0, 0), sigma, sigmaY=sigma, borderType=cv2.BORDER_CONSTANT)

    region = mask[y0:y1, x0:x1]
    painted = layer > 0
    region[..., 3] = np.maximum(region[..., 3], layer)
    region[painted, 0] = color[0]
    region[painted, 1] = color[1]
    region[painted, 2] = color[2]
    return mask


def paint_dab(
    mask: np.ndarray,
    x: float,
    y: float,
    radius: Optional[float] = None,
    feather: Optional[float] = None,
    color: Tuple[int, int, int] = (255, 255, 255),
) -> np.ndarray:
    """Paint one feathered circle in place and return the mask."""
    radius = settings.MASK_DEFAULTS["brush_radius"] if radius is None else radius
    feather = settings.MASK_DEFAULTS["feather"] if feather is None else feather
    radius, feather = clamp_brush(radius, feather)
    return _stamp(mask, [(x, y)], radius, feather, color)


def paint_stroke(
    mask: np.ndarray,
    points: Iterable[Point],
    radius: Optional[float] = None,
    feather: Optional[float] = None,
    color: Tuple[int, int, int] = (255, 255, 255),
) -> np.ndarray:
    """Paint a connected stroke through ``points`` in place."""
    points = [(float(x), float(y)) for x, y in points]
    if not points:
        return mask
    radius = settings.MASK_DEFAULTS["brush_radius"] if radius is None else radius
    feather = settings.MASK_DEFAULTS["feather"] if feather is None else feather
    radius, feather = clamp_brush(radius, feather)
    logger.debug("Stroke of %d points, radius %.1f, feather %.1f", len(points), radius, feather)
    return _stamp(mask, points, radius, feather, color)
