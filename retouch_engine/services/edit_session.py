# Per-photo edit session and its background render scheduler
"""
EditSession ties one source photo to its adjustment log, its buffer pool and
the pipelines that draw from that pool. The content-fill model service is the
only shared collaborator and is injected by the caller.

RenderScheduler runs render requests for one session on a single background
worker. Requests are debounced and only the newest one is allowed to deliver
a result; superseded requests are skipped and stale results are dropped.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

import cv2
import numpy as np

from ..config import settings
from ..io.image_loader import load_image
from ..io.image_saver import save_image
from ..processing.adjustment_log import AdjustmentLog
from ..processing.beauty import BeautyParams, BeautyPipeline
from ..processing.buffers import BufferPool, RenderResult, ensure_rgba
from ..processing.compositor import MaskCompositor
from ..processing.content_fill import ContentFillEngine, InpaintModelService
from ..processing.filters import FilterPipeline, FilterSelection
from ..utils.errors import (
    AppError,
    BufferAllocationError,
    ErrorCategory,
    ExportError,
    InvalidBufferError,
    RenderError,
)
from ..utils.image_proxy import create_proxy, estimate_memory_usage, resize_exact, scale_image
from ..utils.logger import get_logger

logger = get_logger(__name__)

_RES = settings.RESOLUTION_DEFAULTS


class RenderScheduler:
    """Latest-wins background rendering on a single worker thread."""

    def __init__(self, debounce_seconds: Optional[float] = None, name: str = "render"):
        self.debounce_seconds = (
            settings.SCHEDULER_DEFAULTS["debounce_seconds"] if debounce_seconds is None else debounce_seconds
        )
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._generation = 0
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def submit(
        self,
        render_func: Callable[[], Any],
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Future:
        """
        Queue a render; any earlier request that has not delivered yet is superseded.

        The returned future resolves to the render result, or None when the
        request was superseded, produced a stale result or failed.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("RenderScheduler has been shut down")
            self._generation += 1
            generation = self._generation
        return self._executor.submit(self._run, generation, render_func, on_result, on_error)

    def _run(self, generation, render_func, on_result, on_error):
        if not self._is_current(generation):
            logger.debug("Render request %d superseded while queued", generation)
            return None

        if self.debounce_seconds > 0:
            time.sleep(self.debounce_seconds)

        if not self._is_current(generation):
            logger.debug("Render request %d superseded before start", generation)
            return None

        try:
            result = render_func()
        except Exception as e:
            if not self._is_current(generation):
                logger.debug("Render request %d failed after being superseded: %s", generation, e)
                return None
            logger.exception("Background render %d failed", generation)
            if on_error:
                on_error(e)
            return None

        if not self._is_current(generation):
            logger.debug("Dropping stale result of render request %d", generation)
            return None

        if on_result:
            on_result(result)
        return result

    def cancel_pending(self) -> None:
        """Invalidate every request submitted so far."""
        with self._lock:
            self._generation += 1

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
            self._generation += 1
        self._executor.shutdown(wait=wait)


class EditSession:
    """
    All editing state for one photo.

    The source is held at bounded working resolution. Every render replays the
    adjustment log against that source and then runs one pipeline over the
    session's own buffer pool.
    """

    def __init__(
        self,
        source: np.ndarray,
        model_service: Optional[InpaintModelService] = None,
        working_max_side: Optional[int] = None,
        preview_max_side: Optional[int] = None,
        log: Optional[AdjustmentLog] = None,
        debounce_seconds: Optional[float] = None,
        strict_filters: bool = False,
    ):
        self.working_max_side = working_max_side or _RES["max_working_side"]
        self.preview_max_side = preview_max_side or _RES["max_preview_side"]

        working, self.source_info = create_proxy(
            ensure_rgba(source), max_side=self.working_max_side, interpolation=cv2.INTER_AREA
        )
        self._source = working.copy()
        self._source.setflags(write=False)

        self.log = log if log is not None else AdjustmentLog()
        self._pool = BufferPool()
        self._beauty = BeautyPipeline(self._pool)
        self._filters = FilterPipeline(self._pool, strict=strict_filters)
        self._compositor = MaskCompositor(self._pool)
        self._content_fill = ContentFillEngine(model_service, pool=self._pool)
        self._render_lock = threading.RLock()
        self._debounce_seconds = debounce_seconds
        self._scheduler: Optional[RenderScheduler] = None
        self._closed = False

    @classmethod
    def from_file(cls, file_path: str, **kwargs) -> 'EditSession':
        """Load a photo from disk and open a session for it."""
        max_side = kwargs.get("working_max_side") or _RES["max_working_side"]
        image = load_image(file_path, max_side=max_side)
        if image is None:
            raise AppError(
                f"Could not load image '{file_path}'",
                category=ErrorCategory.FILE_IO,
                user_message="Could not open this photo",
            )
        return cls(image, **kwargs)

    @property
    def source(self) -> np.ndarray:
        """Read-only working-resolution source."""
        return self._source

    @property
    def pool(self) -> BufferPool:
        return self._pool

    @property
    def content_fill_path(self) -> Optional[str]:
        """"model" or "fallback" for the latest remove_object call."""
        return self._content_fill.last_path

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise RenderError("Edit session is closed", step="session")

    # --- sources ---

    def adjusted_source(self) -> np.ndarray:
        """The source with the adjustment log replayed from scratch."""
        self._check_open()
        return self.log.replay(self._source)

    def preview_source(self) -> np.ndarray:
        """Adjusted source bounded to the preview side."""
        preview, _ = create_proxy(self.adjusted_source(), max_side=self.preview_max_side)
        return preview

    def _base(self, preview: bool, source: Optional[np.ndarray]) -> np.ndarray:
        if source is not None:
            return ensure_rgba(source)
        return self.preview_source() if preview else self.adjusted_source()

    @staticmethod
    def _fit_mask(mask: np.ndarray, image: np.ndarray) -> np.ndarray:
        """Masks painted at another resolution are resampled to the image."""
        mask = ensure_rgba(mask)
        height, width = image.shape[:2]
        if mask.shape[:2] != (height, width):
            mask = resize_exact(mask, width, height, interpolation=cv2.INTER_LINEAR)
        return mask

    def _guarded(self, step: str, func: Callable, *args):
        with self._render_lock:
            self._check_open()
            try:
                return func(*args)
            except InvalidBufferError as e:
                logger.exception("Render step '%s' aborted", step)
                self._pool.invalidate()
                raise RenderError(f"{step} failed: {e}", step=step, original_error=e) from e

    # --- renders ---

    def render_beauty(
        self,
        params: BeautyParams,
        preview: bool = False,
        source: Optional[np.ndarray] = None,
    ) -> RenderResult:
        base = self._base(preview, source)
        return self._guarded("beauty", self._beauty.render, base, params)

    def render_filter(
        self,
        selection: FilterSelection,
        preview: bool = False,
        source: Optional[np.ndarray] = None,
    ) -> RenderResult:
        base = self._base(preview, source)
        return self._guarded("filter", self._filters.render, base, selection)

    def render_soft_blur(
        self,
        mask: np.ndarray,
        radius: Optional[float] = None,
        preview: bool = False,
        source: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        radius = settings.MASK_DEFAULTS["soft_blur_radius"] if radius is None else radius
        base = self._base(preview, source)
        return self._guarded("soft_blur", self._compositor.soft_blur, base, self._fit_mask(mask, base), radius)

    def render_doodle(
        self,
        mask: np.ndarray,
        preview: bool = False,
        source: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        base = self._base(preview, source)
        return self._guarded("doodle", self._compositor.doodle, base, self._fit_mask(mask, base))

    def remove_object(self, mask: np.ndarray, source: Optional[np.ndarray] = None) -> np.ndarray:
        """Content-fill the masked region at full working resolution."""
        base = self._base(False, source)
        result = self._guarded("content_fill", self._content_fill.inpaint, base, self._fit_mask(mask, base))
        logger.info("Object removal finished via %s path", self._content_fill.last_path)
        return result

    # --- background scheduling ---

    @property
    def scheduler(self) -> RenderScheduler:
        if self._scheduler is None:
            self._scheduler = RenderScheduler(self._debounce_seconds)
        return self._scheduler

    def schedule(
        self,
        render_func: Callable[[], Any],
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Future:
        """Run ``render_func`` on this session's worker, latest request wins."""
        self._check_open()
        return self.scheduler.submit(render_func, on_result, on_error)

    # --- export ---

    def export(
        self,
        output_path: str,
        render: Optional[Callable[[np.ndarray], np.ndarray]] = None,
        quality: Optional[int] = None,
    ) -> str:
        """
        Render at working resolution and write the result atomically.

        ``render`` maps the adjusted source to the final image; the default
        exports the adjusted source itself. When a buffer allocation runs out
        of memory the render is retried once at half scale.

        Raises:
            ExportError: If rendering fails after the retry or writing fails.
        """
        self._check_open()
        source = self.adjusted_source()
        attempts = _RES["oom_max_retries"] + 1

        image = None
        for attempt in range(attempts):
            try:
                image = render(source) if render is not None else source
                break
            except (BufferAllocationError, MemoryError) as e:
                if attempt + 1 >= attempts:
                    raise ExportError(
                        f"Out of memory rendering '{output_path}'",
                        file_path=output_path,
                        original_error=e,
                    ) from e
                logger.warning(
                    "Out of memory rendering %dx%d (%.1f MB), retrying at %.0f%% scale",
                    source.shape[1], source.shape[0], estimate_memory_usage(source),
                    _RES["oom_retry_scale"] * 100,
                )
                self._pool.invalidate()
                source = scale_image(source, _RES["oom_retry_scale"])

        if isinstance(image, RenderResult):
            image = image.image
        return save_image(image, output_path, quality=quality)

    def close(self) -> None:
        """Release every pooled buffer and stop the background worker."""
        if self._closed:
            return
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=True)
        with self._render_lock:
            self._pool.close()
            self._closed = True
        logger.debug("Edit session closed")

    def __enter__(self) -> 'EditSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
