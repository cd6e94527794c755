# Processing package initialization
from .buffers import (
    PixelBuffer, BufferPool, BufferRole, PingPong, RenderResult, ensure_rgba
)
from .color_matrix import (
    ColorMatrix, FilterPreset, FILTER_TABLE,
    identity, brightness, saturation, compose, blend, from_rows,
    filter_matrix, filter_names, resolve_filter
)
from .operators import gaussian_blur, convolve3x3, apply_color_matrix
from .compositor import MaskCompositor, composite, doodle_overlay, mask_preview
from .mask_painter import new_mask, clear_mask, paint_dab, paint_stroke
from .adjustment_log import (
    AdjustmentLog, AdjustmentOp, Rotate, CenterCrop, FreeformCrop, parse_token
)
from .beauty import (
    BeautyParams, BeautyPipeline,
    smooth_to_blur_radius, sharpen_to_kernel, ruddy_to_saturation,
    whiten_to_brightness, beauty_color_matrix
)
from .filters import FilterSelection, FilterPipeline
from .content_fill import (
    ContentFillEngine, InpaintModelService, ModelState,
    FillStrategy, ModelFillStrategy, BlurBlendFillStrategy
)
from .batch_queue import (
    BatchItemSettings, BatchItem, BatchItemStatus, BatchQueueStats, BatchQueue,
    batch_render_file
)
