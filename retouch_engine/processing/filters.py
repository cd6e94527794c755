# Filter pipeline: one named color matrix blended by strength
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from ..utils.logger import get_logger
from .buffers import BufferPool, PingPong, RenderResult
from .color_matrix import ColorMatrix, FilterPreset, blend, filter_matrix, identity, resolve_filter
from .operators import apply_color_matrix

logger = get_logger(__name__)


@dataclass(frozen=True)
class FilterSelection:
    """A named preset plus strength in [0, 1]."""
    name: Union[str, FilterPreset] = FilterPreset.ORIGINAL
    strength: float = 1.0

    @property
    def clamped_strength(self) -> float:
        return min(max(float(self.strength), 0.0), 1.0)


class FilterPipeline:
    """
    Resolves a FilterSelection to a matrix and applies it in a single stage.

    Unknown filter names fall back to the original image unless ``strict``
    is set, in which case UnknownFilterError is raised.
    """

    def __init__(self, pool: Optional[BufferPool] = None, strict: bool = False):
        self._pool = pool if pool is not None else BufferPool()
        self.strict = strict

    @property
    def pool(self) -> BufferPool:
        return self._pool

    def matrix_for(self, selection: FilterSelection) -> ColorMatrix:
        preset = resolve_filter(selection.name, strict=self.strict)
        return blend(identity(), filter_matrix(preset), selection.clamped_strength)

    def render(self, source: np.ndarray, selection: FilterSelection) -> RenderResult:
        matrix = self.matrix_for(selection)
        runner = PingPong(self._pool, source)

        if matrix.is_identity():
            runner.skip("filter")
        else:
            runner.run("filter", apply_color_matrix, matrix)

        result = runner.result()
        logger.debug("Filter %s @ %.2f: stages=%s", selection.name, selection.clamped_strength,
                     result.stages_executed)
        return result
