# 4x4 homogeneous color matrices and the named filter table
"""
Color matrix algebra over homogeneous (R, G, B, 1) in normalised [0, 1] units.

Row 4 is always (0, 0, 0, 1); alpha is not part of the vector and passes
through every transform untouched.
``compose(first, second)`` applies ``first`` then ``second``. ``blend`` is a
per-element lerp of coefficients, which is what the filter strength slider
has always meant; it is not a partial application of the transform.
"""

from enum import Enum
from typing import Dict, Optional, Sequence, Union

import numpy as np

from ..config import settings
from ..utils.errors import UnknownFilterError
from ..utils.logger import get_logger

logger = get_logger(__name__)

LUMA_WEIGHTS = settings.PIPELINE_DEFAULTS["luma_weights"]


class ColorMatrix:
    """Immutable 4x4 color transform."""

    __slots__ = ("_m",)

    def __init__(self, values):
        m = np.array(values, dtype=np.float64).reshape(4, 4)
        m[3, :] = (0.0, 0.0, 0.0, 1.0)
        m.setflags(write=False)
        self._m = m

    @property
    def values(self) -> np.ndarray:
        """Read-only 4x4 array."""
        return self._m

    @property
    def linear(self) -> np.ndarray:
        """Upper-left 3x3 part acting on RGB."""
        return self._m[:3, :3]

    @property
    def offset(self) -> np.ndarray:
        """Translation column in normalised units."""
        return self._m[:3, 3]

    def is_identity(self, tolerance: float = 0.0) -> bool:
        if tolerance == 0.0:
            return bool(np.array_equal(self._m, _IDENTITY))
        return bool(np.allclose(self._m, _IDENTITY, rtol=0.0, atol=tolerance))

    def allclose(self, other: 'ColorMatrix', tolerance: float = 1e-6) -> bool:
        return bool(np.allclose(self._m, other._m, rtol=0.0, atol=tolerance))

    def __eq__(self, other) -> bool:
        if not isinstance(other, ColorMatrix):
            return NotImplemented
        return bool(np.array_equal(self._m, other._m))

    def __hash__(self) -> int:
        return hash(self._m.tobytes())

    def __repr__(self) -> str:
        rows = ", ".join(
            "[" + ", ".join(f"{v:.4g}" for v in row) + "]" for row in self._m[:3]
        )
        return f"ColorMatrix({rows})"


_IDENTITY = np.eye(4, dtype=np.float64)


def identity() -> ColorMatrix:
    return ColorMatrix(_IDENTITY)


def from_rows(rows: Sequence[Sequence[float]]) -> ColorMatrix:
    """
    Build a matrix from three row-major RGB rows.

    Each row is either (r, g, b) or (r, g, b, offset).
    """
    m = np.eye(4, dtype=np.float64)
    for i, row in enumerate(rows[:3]):
        m[i, :len(row)] = row
    return ColorMatrix(m)


def brightness(b: float) -> ColorMatrix:
    """Scale R, G and B uniformly by ``b``."""
    m = np.eye(4, dtype=np.float64)
    m[0, 0] = m[1, 1] = m[2, 2] = float(b)
    return ColorMatrix(m)


def saturation(s: float, weights=LUMA_WEIGHTS) -> ColorMatrix:
    """
    Luma-preserving saturation matrix.

    Column j of every row carries ``(1 - s) * w[j]``, plus ``s`` on the
    diagonal; ``s = 1`` yields the identity and ``s = 0`` grayscale.
    """
    s = float(s)
    m = np.eye(4, dtype=np.float64)
    inv = 1.0 - s
    for row in range(3):
        for col in range(3):
            m[row, col] = inv * weights[col]
        m[row, row] += s
    return ColorMatrix(m)


def compose(first: ColorMatrix, second: ColorMatrix) -> ColorMatrix:
    """Apply ``first`` then ``second``."""
    return ColorMatrix(second.values @ first.values)


def blend(base: ColorMatrix, target: ColorMatrix, alpha: float) -> ColorMatrix:
    """Per-element ``base * (1 - alpha) + target * alpha``, alpha clamped to [0, 1]."""
    alpha = min(max(float(alpha), 0.0), 1.0)
    return ColorMatrix(base.values * (1.0 - alpha) + target.values * alpha)


class FilterPreset(Enum):
    """The closed set of named filters; values are the display names."""
    ORIGINAL = "原图"
    WARM = "暖色"
    COOL = "冷色"
    MONO = "黑白"
    VINTAGE = "复古"
    VIVID = "增饱和"
    MUTED = "降饱和"
    SOFT = "柔和"
    TEAL_ORANGE = "青橙"
    PINK = "粉调"
    GREEN = "绿野"

    @property
    def display_name(self) -> str:
        return self.value


def _build_filter_table() -> Dict[FilterPreset, ColorMatrix]:
    luma = list(LUMA_WEIGHTS)
    return {
        FilterPreset.ORIGINAL: identity(),
        FilterPreset.WARM: brightness(1.02),
        FilterPreset.COOL: from_rows([
            [0.95, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.05, 1.05],
        ]),
        FilterPreset.MONO: from_rows([luma, luma, luma]),
        FilterPreset.VINTAGE: from_rows([
            [0.393, 0.769, 0.189],
            [0.349, 0.686, 0.168],
            [0.272, 0.534, 0.131],
        ]),
        FilterPreset.VIVID: saturation(1.35),
        FilterPreset.MUTED: saturation(0.75),
        FilterPreset.SOFT: saturation(0.85),
        FilterPreset.TEAL_ORANGE: from_rows([
            [1.05, -0.04, 0.0],
            [0.0, 0.95, 0.0],
            [0.0, 0.06, 1.06],
        ]),
        FilterPreset.PINK: from_rows([
            [1.06, 0.02, 0.02],
            [0.02, 0.98, 0.0],
            [0.02, 0.0, 1.02],
        ]),
        FilterPreset.GREEN: from_rows([
            [0.95, 0.0, 0.0],
            [0.05, 1.05, 0.0],
            [0.0, 0.0, 0.95],
        ]),
    }


FILTER_TABLE: Dict[FilterPreset, ColorMatrix] = _build_filter_table()


def filter_matrix(preset: FilterPreset) -> ColorMatrix:
    """Total mapping from preset to matrix."""
    return FILTER_TABLE[preset]


def filter_names():
    """Display names in menu order."""
    return [preset.display_name for preset in FilterPreset]


def resolve_filter(
    name: Union[str, FilterPreset, None],
    strict: bool = False,
) -> FilterPreset:
    """
    Resolve a display name, enum key or member to a FilterPreset.

    Unknown names resolve to ORIGINAL with a warning, or raise
    UnknownFilterError when ``strict`` is set.
    """
    if isinstance(name, FilterPreset):
        return name

    key: Optional[str] = name.strip() if isinstance(name, str) else None
    if key:
        for preset in FilterPreset:
            if key == preset.value or key.upper() == preset.name:
                return preset

    if strict:
        raise UnknownFilterError(f"Unknown filter '{name}'", name=name)

    logger.warning("Unknown filter '%s', using %s", name, FilterPreset.ORIGINAL.display_name)
    return FilterPreset.ORIGINAL
