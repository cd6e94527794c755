# Geometry tools for crop and rotate operations
"""
Image geometry operations used by the adjustment log: crop and quarter-turn rotate.
"""

from typing import Tuple, NamedTuple, Optional
from dataclasses import dataclass
import math

import numpy as np

from .logger import get_logger

logger = get_logger(__name__)


class CropRect(NamedTuple):
    """Rectangle for cropping (x, y, width, height) in pixels."""
    x: int
    y: int
    width: int
    height: int

    def to_slice(self) -> Tuple[slice, slice]:
        """Convert to numpy array slices (y_slice, x_slice)."""
        return (
            slice(self.y, self.y + self.height),
            slice(self.x, self.x + self.width)
        )

    def clamp(self, image_width: int, image_height: int) -> 'CropRect':
        """Clamp crop rect to image bounds."""
        x = max(0, min(self.x, image_width - 1))
        y = max(0, min(self.y, image_height - 1))
        w = max(1, min(self.width, image_width - x))
        h = max(1, min(self.height, image_height - y))
        return CropRect(x, y, w, h)


@dataclass
class AspectRatio:
    """Aspect ratio constraint for cropping."""
    width: int
    height: int
    name: str = ""

    @property
    def ratio(self) -> float:
        """Get the ratio as a float (width/height)."""
        return self.width / self.height if self.height > 0 else 1.0

    @property
    def token_suffix(self) -> str:
        """Suffix used by the adjustment log, e.g. "4_3"."""
        return f"{self.width}_{self.height}"

    def constrain(self, rect: CropRect) -> CropRect:
        """
        Constrain a crop rect to this aspect ratio, keeping it centred.

        The limiting dimension governs: a rect that is too wide loses width,
        a rect that is too tall loses height.
        """
        return center_crop_rect(rect.width, rect.height, self.ratio, origin=(rect.x, rect.y))


# Aspect ratios offered by the crop tool
ASPECT_RATIOS = {
    "1:1": AspectRatio(1, 1, "Square"),
    "4:3": AspectRatio(4, 3, "4:3"),
    "16:9": AspectRatio(16, 9, "16:9 (Widescreen)"),
    "3:4": AspectRatio(3, 4, "3:4"),
    "9:16": AspectRatio(9, 16, "9:16 (Story)"),
}


def find_aspect_ratio(ratio: float, tolerance: float = 1e-3) -> Optional[AspectRatio]:
    """Return the named aspect ratio matching ``ratio``, if any."""
    for aspect in ASPECT_RATIOS.values():
        if abs(aspect.ratio - ratio) < tolerance:
            return aspect
    return None


def center_crop_rect(
    width: int,
    height: int,
    ratio: float,
    origin: Tuple[int, int] = (0, 0),
) -> CropRect:
    """
    Largest centred rectangle of the given aspect ratio inside width x height.

    Args:
        width: Available width in pixels.
        height: Available height in pixels.
        ratio: Target width/height ratio (> 0).
        origin: Top-left offset of the available area.

    Returns:
        CropRect of at least 1x1 pixels.
    """
    current_ratio = width / height if height > 0 else 1.0

    if abs(current_ratio - ratio) < 0.001:
        return CropRect(origin[0], origin[1], width, height)

    if current_ratio > ratio:
        # Too wide, reduce width
        new_width = int(round(height * ratio))
        new_height = height
    else:
        # Too tall, reduce height
        new_width = width
        new_height = int(round(width / ratio))

    new_width = max(1, min(new_width, width))
    new_height = max(1, min(new_height, height))

    new_x = origin[0] + (width - new_width) // 2
    new_y = origin[1] + (height - new_height) // 2
    return CropRect(new_x, new_y, new_width, new_height)


def normalized_to_rect(
    left: float,
    top: float,
    right: float,
    bottom: float,
    image_width: int,
    image_height: int,
) -> CropRect:
    """
    Map a normalised [0, 1] rectangle onto pixel coordinates.

    Edges are floored/ceiled outward so that any non-empty normalised rect
    covers at least one pixel in each direction.
    """
    x0 = int(math.floor(left * image_width))
    y0 = int(math.floor(top * image_height))
    x1 = int(math.ceil(right * image_width))
    y1 = int(math.ceil(bottom * image_height))
    rect = CropRect(x0, y0, max(1, x1 - x0), max(1, y1 - y0))
    return rect.clamp(image_width, image_height)


def crop_image(image: np.ndarray, rect: CropRect) -> np.ndarray:
    """
    Crop an image to the specified rectangle.

    Args:
        image: Input image array (H, W, C).
        rect: Crop rectangle.

    Returns:
        Cropped, contiguous image array.
    """
    if image is None:
        return None

    h, w = image.shape[:2]
    rect = rect.clamp(w, h)

    y_slice, x_slice = rect.to_slice()
    return image[y_slice, x_slice].copy()


def rotate_90(image: np.ndarray, clockwise: bool = True) -> np.ndarray:
    """
    Rotate image by 90 degrees.

    Args:
        image: Input image array.
        clockwise: If True, rotate clockwise; otherwise counter-clockwise.

    Returns:
        Rotated, contiguous image array (width and height swapped).
    """
    if image is None:
        return None

    if clockwise:
        return np.ascontiguousarray(np.rot90(image, k=-1))  # k=-1 is clockwise
    else:
        return np.ascontiguousarray(np.rot90(image, k=1))   # k=1 is counter-clockwise
