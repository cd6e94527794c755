# Pixel buffers, the per-session buffer pool and the ping-pong stage runner
"""
Fixed-size 8-bit RGBA pixel buffers and the discipline for reusing them.

A BufferPool belongs to exactly one edit session. It holds one buffer per
BufferRole for a single (width, height); asking for any other size releases
every buffer first and allocates fresh ones. The PingPong runner alternates
two of those buffers as source and destination across pipeline stages.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ..utils.errors import BufferAllocationError, BufferMismatchError, InvalidBufferError
from ..utils.logger import get_logger

logger = get_logger(__name__)

CHANNELS = 4


class BufferRole(Enum):
    """Slot of a buffer inside a pool."""
    INPUT = "input"
    OUTPUT = "output"
    SCRATCH_1 = "scratch_1"
    SCRATCH_2 = "scratch_2"


def ensure_rgba(image: np.ndarray) -> np.ndarray:
    """
    Return an (H, W, 4) uint8 view or copy of ``image``.

    RGB input gets an opaque alpha plane. A 2-D array is treated as an
    alpha-only mask (RGB set to white).
    """
    image = np.asarray(image)
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        rgba = np.full(image.shape + (CHANNELS,), 255, dtype=np.uint8)
        rgba[..., 3] = image
        return rgba

    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise InvalidBufferError(f"Unsupported pixel layout {image.shape}")

    if image.shape[2] == 3:
        rgba = np.empty(image.shape[:2] + (CHANNELS,), dtype=np.uint8)
        rgba[..., :3] = image
        rgba[..., 3] = 255
        return rgba

    return np.ascontiguousarray(image)


class PixelBuffer:
    """
    A width x height 8-bit RGBA buffer backed by a contiguous numpy array.

    The buffer is mutable in place but never resized. Once released, any
    access to its pixels raises InvalidBufferError.
    """

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None):
        if width < 0 or height < 0:
            raise ValueError(f"Negative buffer dimensions {width}x{height}")
        if data is None:
            data = PixelBuffer._allocate_array(width, height)
        elif data.shape != (height, width, CHANNELS) or data.dtype != np.uint8:
            raise BufferMismatchError(
                f"Backing array {data.shape} does not match {width}x{height} RGBA",
                expected=(width, height),
                actual=(data.shape[1], data.shape[0]) if data.ndim >= 2 else None,
            )
        self._width = int(width)
        self._height = int(height)
        self._data: Optional[np.ndarray] = np.ascontiguousarray(data)

    @staticmethod
    def _allocate_array(width: int, height: int) -> np.ndarray:
        try:
            return np.zeros((height, width, CHANNELS), dtype=np.uint8)
        except MemoryError as e:
            raise BufferAllocationError(
                f"Could not allocate {width}x{height} RGBA buffer",
                shape=(height, width, CHANNELS),
                original_error=e,
            ) from e

    @classmethod
    def allocate(cls, width: int, height: int) -> 'PixelBuffer':
        """Allocate a zero-filled buffer."""
        return cls(width, height)

    @classmethod
    def from_array(cls, image: np.ndarray) -> 'PixelBuffer':
        """Create a buffer holding a copy of an RGB or RGBA array."""
        rgba = ensure_rgba(image)
        buffer = cls.allocate(rgba.shape[1], rgba.shape[0])
        np.copyto(buffer.data, rgba)
        return buffer

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)."""
        return (self._width, self._height)

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> np.ndarray:
        """The live (H, W, 4) pixel array."""
        if self._data is None:
            raise InvalidBufferError(f"Buffer {self._width}x{self._height} was released")
        return self._data

    def validate(self, step: Optional[str] = None) -> None:
        """Fail fast if this buffer cannot be used by a stage."""
        if self._data is None:
            raise InvalidBufferError(
                f"{step or 'stage'}: buffer {self._width}x{self._height} was released",
                step=step,
            )
        if self._width == 0 or self._height == 0:
            raise InvalidBufferError(
                f"{step or 'stage'}: zero-area buffer {self._width}x{self._height}",
                step=step,
            )

    def load(self, image: np.ndarray) -> None:
        """Overwrite this buffer's pixels with an array of identical dimensions."""
        rgba = ensure_rgba(image)
        if rgba.shape[:2] != (self._height, self._width):
            raise BufferMismatchError(
                f"Cannot load {rgba.shape[1]}x{rgba.shape[0]} pixels into "
                f"{self._width}x{self._height} buffer",
                expected=self.size,
                actual=(rgba.shape[1], rgba.shape[0]),
            )
        np.copyto(self.data, rgba)

    def copy_from(self, other: 'PixelBuffer') -> None:
        """Copy another buffer's pixels into this one."""
        self.load(other.data)

    def to_array(self) -> np.ndarray:
        """Detached copy of the pixels."""
        return self.data.copy()

    def release(self) -> None:
        self._data = None

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"PixelBuffer({self._width}x{self._height}, {state})"


def check_same_size(step: str, *buffers: PixelBuffer) -> None:
    """Validate every buffer and require identical dimensions."""
    for buffer in buffers:
        buffer.validate(step)
    expected = buffers[0].size
    for buffer in buffers[1:]:
        if buffer.size != expected:
            raise BufferMismatchError(
                f"{step}: buffer {buffer.size} does not match {expected}",
                expected=expected,
                actual=buffer.size,
                step=step,
            )


class BufferPool:
    """
    Role-indexed arena of same-sized buffers owned by one session.

    Buffers are reused only on an exact (width, height) match. Any other
    request invalidates the pool before new buffers are handed out.
    """

    def __init__(self):
        self._size: Optional[Tuple[int, int]] = None
        self._buffers: Dict[BufferRole, PixelBuffer] = {}
        self.allocation_count = 0
        self.invalidation_count = 0

    @property
    def size(self) -> Optional[Tuple[int, int]]:
        return self._size

    def acquire(self, role: BufferRole, width: int, height: int) -> PixelBuffer:
        """Get the buffer for ``role`` at the requested dimensions."""
        if self._size != (width, height):
            if self._buffers:
                logger.debug("Pool size change %s -> %s, invalidating", self._size, (width, height))
            self.invalidate()
            self._size = (width, height)

        buffer = self._buffers.get(role)
        if buffer is None or buffer.released:
            buffer = PixelBuffer.allocate(width, height)
            self._buffers[role] = buffer
            self.allocation_count += 1
        return buffer

    def invalidate(self) -> None:
        """Release every buffer; the next acquire allocates fresh ones."""
        if self._buffers:
            self.invalidation_count += 1
        for buffer in self._buffers.values():
            buffer.release()
        self._buffers.clear()
        self._size = None

    def close(self) -> None:
        self.invalidate()

    def __len__(self) -> int:
        return len(self._buffers)


@dataclass
class RenderResult:
    """Result of running a stage pipeline."""
    image: np.ndarray
    stages_executed: List[str] = field(default_factory=list)
    stage_times: Dict[str, float] = field(default_factory=dict)
    total_time: float = 0.0

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]


StageOperator = Callable[..., None]


class PingPong:
    """
    Runs stages over two pooled buffers, swapping source and destination
    after every stage that actually runs.
    """

    def __init__(self, pool: BufferPool, source: np.ndarray):
        rgba = ensure_rgba(source)
        height, width = rgba.shape[:2]
        self._buffers = [
            pool.acquire(BufferRole.INPUT, width, height),
            pool.acquire(BufferRole.SCRATCH_1, width, height),
        ]
        self._buffers[0].load(rgba)
        self._current = 0
        self._start = time.time()
        self.stages_executed: List[str] = []
        self.stage_times: Dict[str, float] = {}

    @property
    def current(self) -> PixelBuffer:
        """Buffer holding the latest stage output."""
        return self._buffers[self._current]

    def run(self, name: str, operator: StageOperator, *args) -> None:
        """Run ``operator(src, dst, *args)`` and swap roles."""
        src = self._buffers[self._current]
        dst = self._buffers[1 - self._current]
        stage_start = time.time()
        operator(src, dst, *args)
        elapsed = time.time() - stage_start
        self.stage_times[name] = elapsed
        self.stages_executed.append(name)
        self._current = 1 - self._current
        logger.debug("Stage %s: %.4fs", name, elapsed)

    def skip(self, name: str) -> None:
        logger.debug("Stage %s skipped", name)

    def result(self) -> RenderResult:
        return RenderResult(
            image=self.current.to_array(),
            stages_executed=list(self.stages_executed),
            stage_times=dict(self.stage_times),
            total_time=time.time() - self._start,
        )
