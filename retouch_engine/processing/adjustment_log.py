# Replayable geometric adjustments
"""
Rotate and crop operations recorded as an ordered log.

The log is replayed from the original source on every recompute, never
against an already adjusted image, so undo is simply dropping the last entry.
Each op has a compact token form used for diagnostics and persistence:
``ROTATE_90``, ``ROTATE_-90``, ``CROP_4_3`` and ``FREE_CROP:l,t,r,b``.
"""

import math
import numbers
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np

from ..utils.errors import InvalidGeometryError
from ..utils.geometry import (
    center_crop_rect,
    crop_image,
    find_aspect_ratio,
    normalized_to_rect,
    rotate_90,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

_CROP_TOKEN = re.compile(r"^CROP_(\d+)_(\d+)$")
_ROTATE_TOKEN = re.compile(r"^ROTATE_(-?\d+)$")
FREE_CROP_PREFIX = "FREE_CROP:"


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class Rotate:
    """Quarter turn; 90 is clockwise, -90 counter-clockwise."""
    degrees: int

    def validate(self) -> None:
        if self.degrees not in (90, -90):
            raise InvalidGeometryError(
                f"Rotation must be 90 or -90 degrees, got {self.degrees}", op="rotate"
            )

    def apply(self, image: np.ndarray) -> np.ndarray:
        return rotate_90(image, clockwise=self.degrees == 90)

    def to_token(self) -> str:
        return f"ROTATE_{int(self.degrees)}"


@dataclass(frozen=True)
class CenterCrop:
    """Largest centred crop with the given width/height ratio."""
    aspect_ratio: float

    def validate(self) -> None:
        ratio = self.aspect_ratio
        if not _is_real(ratio) or not math.isfinite(ratio) or ratio <= 0:
            raise InvalidGeometryError(
                f"Aspect ratio must be a positive number, got {ratio!r}", op="center_crop"
            )

    def apply(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        rect = center_crop_rect(width, height, self.aspect_ratio)
        return crop_image(image, rect)

    def to_token(self) -> str:
        named = find_aspect_ratio(self.aspect_ratio)
        if named is not None:
            return f"CROP_{named.token_suffix}"
        fraction = Fraction(float(self.aspect_ratio)).limit_denominator(1000)
        return f"CROP_{fraction.numerator}_{fraction.denominator}"


@dataclass(frozen=True)
class FreeformCrop:
    """Crop to a rectangle in normalised [0, 1] image coordinates."""
    left: float
    top: float
    right: float
    bottom: float

    def validate(self) -> None:
        values = (self.left, self.top, self.right, self.bottom)
        if not all(_is_real(v) and math.isfinite(v) for v in values):
            raise InvalidGeometryError(f"Crop rectangle is not finite: {values}", op="free_crop")
        if not (0.0 <= self.left < self.right <= 1.0):
            raise InvalidGeometryError(
                f"Crop left/right out of order or range: {self.left}, {self.right}", op="free_crop"
            )
        if not (0.0 <= self.top < self.bottom <= 1.0):
            raise InvalidGeometryError(
                f"Crop top/bottom out of order or range: {self.top}, {self.bottom}", op="free_crop"
            )

    def apply(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        rect = normalized_to_rect(self.left, self.top, self.right, self.bottom, width, height)
        return crop_image(image, rect)

    def to_token(self) -> str:
        coords = ",".join(repr(float(v)) for v in (self.left, self.top, self.right, self.bottom))
        return f"{FREE_CROP_PREFIX}{coords}"


AdjustmentOp = Union[Rotate, CenterCrop, FreeformCrop]


def parse_token(token: str) -> AdjustmentOp:
    """Parse one token back into a validated op."""
    text = token.strip()

    match = _ROTATE_TOKEN.match(text)
    if match:
        op: AdjustmentOp = Rotate(int(match.group(1)))
    elif _CROP_TOKEN.match(text):
        match = _CROP_TOKEN.match(text)
        width, height = int(match.group(1)), int(match.group(2))
        if height == 0:
            raise InvalidGeometryError(f"Bad crop token '{token}'", op="center_crop")
        op = CenterCrop(width / height)
    elif text.startswith(FREE_CROP_PREFIX):
        parts = text[len(FREE_CROP_PREFIX):].split(",")
        try:
            values = [float(p) for p in parts]
        except ValueError as e:
            raise InvalidGeometryError(f"Bad free crop token '{token}'", op="free_crop") from e
        if len(values) != 4:
            raise InvalidGeometryError(f"Free crop needs four values: '{token}'", op="free_crop")
        op = FreeformCrop(*values)
    else:
        raise InvalidGeometryError(f"Unknown adjustment token '{token}'")

    op.validate()
    return op


class AdjustmentLog:
    """Ordered, replayable list of geometric adjustments."""

    def __init__(self, ops: Optional[Iterable[AdjustmentOp]] = None):
        self._ops: List[AdjustmentOp] = []
        for op in ops or ():
            self.append(op)

    def append(self, op: AdjustmentOp) -> None:
        """Validate and record an op; invalid geometry never enters the log."""
        if not isinstance(op, (Rotate, CenterCrop, FreeformCrop)):
            raise InvalidGeometryError(f"Not an adjustment op: {op!r}")
        op.validate()
        self._ops.append(op)
        logger.debug("Adjustment appended: %s", op.to_token())

    def undo(self) -> Optional[AdjustmentOp]:
        """Drop and return the last op, or None if the log is empty."""
        if not self._ops:
            return None
        return self._ops.pop()

    def truncate(self, length: int) -> None:
        if length < 0:
            raise ValueError("length must be >= 0")
        del self._ops[length:]

    def clear(self) -> None:
        self._ops.clear()

    @property
    def ops(self) -> Tuple[AdjustmentOp, ...]:
        return tuple(self._ops)

    @property
    def can_undo(self) -> bool:
        return bool(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[AdjustmentOp]:
        return iter(list(self._ops))

    def replay(self, source: np.ndarray) -> np.ndarray:
        """Apply every op in order to ``source``; the source itself is never modified."""
        image = source.copy()
        for op in self._ops:
            image = op.apply(image)
        return image

    def to_tokens(self) -> List[str]:
        return [op.to_token() for op in self._ops]

    @classmethod
    def from_tokens(cls, tokens: Iterable[str]) -> 'AdjustmentLog':
        log = cls()
        for token in tokens:
            log.append(parse_token(token))
        return log

    def __repr__(self) -> str:
        return f"AdjustmentLog({self.to_tokens()})"
