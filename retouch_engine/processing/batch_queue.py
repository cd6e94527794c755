# Batch queue with per-image settings
"""
Batch editing queue with individual image settings.

Each item is rendered in its own EditSession, so items processed concurrently
never share buffers. Only the inpainting model service may be shared.
"""

from typing import Dict, List, Optional, Any, Callable
from dataclasses import dataclass, field
from enum import Enum
import concurrent.futures
import os
import threading
import time

from ..config import settings
from ..utils.errors import format_user_error
from ..utils.logger import get_logger
from .beauty import BeautyParams
from .filters import FilterSelection

logger = get_logger(__name__)

MODES = ("beauty", "filter")


class BatchItemStatus(Enum):
    """Status of a batch item."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class BatchItemSettings:
    """Settings for a single batch item (None = use global)."""
    mode: Optional[str] = None
    beauty: Optional[BeautyParams] = None
    filter_name: Optional[str] = None
    filter_strength: Optional[float] = None

    # Adjustment log tokens replayed before rendering
    ops: Optional[List[str]] = None

    export_format: Optional[str] = None
    export_quality: Optional[int] = None

    # Custom output filename (None = auto-generate)
    output_filename: Optional[str] = None

    skip: bool = False

    def has_custom_settings(self) -> bool:
        """Check if this item has any custom settings."""
        return (
            self.mode is not None or
            self.beauty is not None or
            self.filter_name is not None or
            self.filter_strength is not None or
            self.ops is not None or
            self.export_format is not None or
            self.export_quality is not None or
            self.output_filename is not None
        )

    def merge_with_global(self, global_settings: 'BatchItemSettings') -> 'BatchItemSettings':
        """Merge with global settings, preferring local values."""
        def pick(name):
            local = getattr(self, name)
            return local if local is not None else getattr(global_settings, name)

        return BatchItemSettings(
            mode=pick("mode"),
            beauty=pick("beauty"),
            filter_name=pick("filter_name"),
            filter_strength=pick("filter_strength"),
            ops=pick("ops"),
            export_format=pick("export_format"),
            export_quality=pick("export_quality"),
            output_filename=self.output_filename,
            skip=self.skip,
        )

    @property
    def filter_selection(self) -> FilterSelection:
        strength = 1.0 if self.filter_strength is None else self.filter_strength
        return FilterSelection(self.filter_name or settings.BATCH_DEFAULTS["filter_name"], strength)


@dataclass
class BatchItem:
    """A single item in the batch queue."""
    file_path: str
    settings: BatchItemSettings = field(default_factory=BatchItemSettings)
    status: BatchItemStatus = BatchItemStatus.PENDING
    error_message: Optional[str] = None
    output_path: Optional[str] = None
    processing_time: float = 0.0

    @property
    def filename(self) -> str:
        return os.path.basename(self.file_path)

    @property
    def is_pending(self) -> bool:
        return self.status == BatchItemStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status == BatchItemStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == BatchItemStatus.FAILED


@dataclass
class BatchQueueStats:
    """Statistics for batch processing."""
    total_items: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    total_time: float = 0.0

    @property
    def progress_percent(self) -> float:
        if self.total_items == 0:
            return 0.0
        return (self.completed + self.failed + self.skipped) / self.total_items * 100

    @property
    def success_rate(self) -> float:
        processed = self.completed + self.failed
        if processed == 0:
            return 0.0
        return self.completed / processed * 100

    @property
    def average_time(self) -> float:
        if self.completed == 0:
            return 0.0
        return self.total_time / self.completed


ProcessFunc = Callable[[str, BatchItemSettings], Optional[str]]


class BatchQueue:
    """
    Batch processing queue with per-image settings.
    """

    def __init__(self):
        self._items: List[BatchItem] = []
        self._global_settings = BatchItemSettings(mode="beauty", beauty=BeautyParams.defaults())
        self._output_dir: Optional[str] = None
        self._is_processing = False
        self._should_stop = False
        self._callback_lock = threading.Lock()

        # Callbacks
        self._on_item_start: Optional[Callable[[BatchItem], None]] = None
        self._on_item_complete: Optional[Callable[[BatchItem], None]] = None
        self._on_progress: Optional[Callable[[BatchQueueStats], None]] = None

    def add_item(self, file_path: str, settings: BatchItemSettings = None) -> BatchItem:
        """Add an item to the queue."""
        item = BatchItem(
            file_path=file_path,
            settings=settings or BatchItemSettings()
        )
        self._items.append(item)
        return item

    def add_items(self, file_paths: List[str]) -> List[BatchItem]:
        """Add multiple items to the queue."""
        return [self.add_item(path) for path in file_paths]

    def remove_item(self, index: int) -> bool:
        """Remove an item from the queue."""
        if 0 <= index < len(self._items):
            del self._items[index]
            return True
        return False

    def clear(self):
        """Clear all items from the queue."""
        self._items.clear()

    def get_item(self, index: int) -> Optional[BatchItem]:
        """Get an item by index."""
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def get_items(self) -> List[BatchItem]:
        """Get all items."""
        return self._items.copy()

    def get_pending_items(self) -> List[BatchItem]:
        """Get all pending items."""
        return [item for item in self._items if item.is_pending and not item.settings.skip]

    def set_global_settings(self, settings: BatchItemSettings):
        """Set global settings applied to all items without custom settings."""
        self._global_settings = settings

    def get_global_settings(self) -> BatchItemSettings:
        return self._global_settings

    def set_output_dir(self, path: str):
        self._output_dir = path

    def get_output_dir(self) -> Optional[str]:
        return self._output_dir

    def get_effective_settings(self, index: int) -> BatchItemSettings:
        """Get effective settings for an item (merged with global)."""
        item = self.get_item(index)
        if item is None:
            return self._global_settings
        return item.settings.merge_with_global(self._global_settings)

    def get_stats(self) -> BatchQueueStats:
        """Get current queue statistics."""
        stats = BatchQueueStats(total_items=len(self._items))

        for item in self._items:
            if item.status == BatchItemStatus.PENDING:
                stats.pending += 1
            elif item.status == BatchItemStatus.PROCESSING:
                stats.processing += 1
            elif item.status == BatchItemStatus.COMPLETED:
                stats.completed += 1
                stats.total_time += item.processing_time
            elif item.status == BatchItemStatus.FAILED:
                stats.failed += 1
            elif item.status == BatchItemStatus.SKIPPED:
                stats.skipped += 1

        return stats

    def reset_status(self):
        """Reset all items to pending status."""
        for item in self._items:
            item.status = BatchItemStatus.PENDING
            item.error_message = None
            item.output_path = None
            item.processing_time = 0.0

    def set_callbacks(
        self,
        on_item_start: Callable[[BatchItem], None] = None,
        on_item_complete: Callable[[BatchItem], None] = None,
        on_progress: Callable[[BatchQueueStats], None] = None
    ):
        """Set processing callbacks."""
        self._on_item_start = on_item_start
        self._on_item_complete = on_item_complete
        self._on_progress = on_progress

    def request_stop(self):
        """Request processing to stop; items not yet started stay pending."""
        self._should_stop = True

    def is_processing(self) -> bool:
        return self._is_processing

    def process_item(self, item: BatchItem, process_func: ProcessFunc) -> bool:
        """
        Process a single item.

        Args:
            item: The batch item to process.
            process_func: Function that takes (file_path, settings) and returns output_path or None.

        Returns:
            True if successful.
        """
        if item.settings.skip:
            item.status = BatchItemStatus.SKIPPED
            return True

        if self._should_stop:
            return False

        item.status = BatchItemStatus.PROCESSING

        if self._on_item_start:
            with self._callback_lock:
                self._on_item_start(item)

        start_time = time.time()

        try:
            effective_settings = item.settings.merge_with_global(self._global_settings)
            output_path = process_func(item.file_path, effective_settings)

            item.processing_time = time.time() - start_time

            if output_path:
                item.output_path = output_path
                item.status = BatchItemStatus.COMPLETED
                logger.info("Processed: %s -> %s (%.2fs)",
                            item.filename, os.path.basename(output_path), item.processing_time)
                return True
            else:
                item.status = BatchItemStatus.FAILED
                item.error_message = "Processing returned no output"
                return False

        except Exception as e:
            item.processing_time = time.time() - start_time
            item.status = BatchItemStatus.FAILED
            item.error_message = format_user_error(e, "processing")
            logger.exception("Failed to process: %s", item.filename)
            return False

        finally:
            with self._callback_lock:
                if self._on_item_complete:
                    self._on_item_complete(item)
                if self._on_progress:
                    self._on_progress(self.get_stats())

    def process_all(self, process_func: ProcessFunc, max_workers: Optional[int] = None) -> BatchQueueStats:
        """
        Process all pending items in the queue on a thread pool.

        Args:
            process_func: Function that takes (file_path, settings) and returns output_path.
            max_workers: Worker threads; defaults to the batch setting.

        Returns:
            Final queue statistics.
        """
        self._is_processing = True
        self._should_stop = False
        max_workers = max_workers or settings.BATCH_DEFAULTS["max_workers"]

        for item in self._items:
            if item.is_pending and item.settings.skip:
                item.status = BatchItemStatus.SKIPPED

        pending = self.get_pending_items()
        logger.info("Batch processing %d items with %d workers", len(pending), max_workers)

        try:
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                future_to_item = {
                    executor.submit(self.process_item, item, process_func): item
                    for item in pending
                }
                for future in concurrent.futures.as_completed(future_to_item):
                    future.result()
            if self._should_stop:
                logger.info("Batch processing stopped by user")
        finally:
            self._is_processing = False

        return self.get_stats()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize queue to dictionary."""
        return {
            "items": [
                {
                    "file_path": item.file_path,
                    "settings": _settings_to_dict(item.settings),
                    "status": item.status.value,
                }
                for item in self._items
            ],
            "global_settings": _settings_to_dict(self._global_settings),
            "output_dir": self._output_dir,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BatchQueue':
        """Deserialize queue from dictionary."""
        queue = cls()
        queue._global_settings = _settings_from_dict(data.get("global_settings", {}))
        queue._output_dir = data.get("output_dir")

        for item_data in data.get("items", []):
            item = BatchItem(
                file_path=item_data["file_path"],
                settings=_settings_from_dict(item_data.get("settings", {})),
            )
            status_str = item_data.get("status", "pending")
            try:
                item.status = BatchItemStatus(status_str)
            except ValueError:
                item.status = BatchItemStatus.PENDING
            queue._items.append(item)

        return queue


def _settings_to_dict(s: BatchItemSettings) -> Dict[str, Any]:
    return {
        "mode": s.mode,
        "beauty": None if s.beauty is None else {
            "smooth": s.beauty.smooth,
            "whiten": s.beauty.whiten,
            "ruddy": s.beauty.ruddy,
            "sharpen": s.beauty.sharpen,
        },
        "filter_name": s.filter_name,
        "filter_strength": s.filter_strength,
        "ops": s.ops,
        "export_format": s.export_format,
        "export_quality": s.export_quality,
        "output_filename": s.output_filename,
        "skip": s.skip,
    }


def _settings_from_dict(data: Dict[str, Any]) -> BatchItemSettings:
    beauty = data.get("beauty")
    return BatchItemSettings(
        mode=data.get("mode"),
        beauty=BeautyParams(**beauty) if beauty else None,
        filter_name=data.get("filter_name"),
        filter_strength=data.get("filter_strength"),
        ops=data.get("ops"),
        export_format=data.get("export_format"),
        export_quality=data.get("export_quality"),
        output_filename=data.get("output_filename"),
        skip=data.get("skip", False),
    )


def output_path_for(file_path: str, output_dir: str, item_settings: BatchItemSettings) -> str:
    """Destination path for a batch item."""
    if item_settings.output_filename:
        return os.path.join(output_dir, item_settings.output_filename)
    stem = os.path.splitext(os.path.basename(file_path))[0]
    ext = item_settings.export_format or settings.EXPORT_DEFAULTS["default_format"]
    if not ext.startswith("."):
        ext = "." + ext
    return os.path.join(output_dir, f"{settings.BATCH_DEFAULTS['output_prefix']}{stem}{ext}")


def batch_render_file(
    file_path: str,
    item_settings: BatchItemSettings,
    output_dir: str,
    model_service=None,
) -> str:
    """
    Standard per-item process function: open a session, replay ops, render, export.

    Use with ``functools.partial`` to bind ``output_dir``.
    """
    from ..services.edit_session import EditSession
    from .adjustment_log import AdjustmentLog

    mode = item_settings.mode or "beauty"
    if mode not in MODES:
        raise ValueError(f"Unknown batch mode '{mode}'")

    log = AdjustmentLog.from_tokens(item_settings.ops or [])
    destination = output_path_for(file_path, output_dir, item_settings)

    session = EditSession.from_file(file_path, model_service=model_service, log=log)
    try:
        if mode == "beauty":
            params = item_settings.beauty or BeautyParams.defaults()

            def render(src):
                return session.render_beauty(params, source=src).image
        else:
            selection = item_settings.filter_selection

            def render(src):
                return session.render_filter(selection, source=src).image
        return session.export(destination, render=render, quality=item_settings.export_quality)
    finally:
        session.close()
