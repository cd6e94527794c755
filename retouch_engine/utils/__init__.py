# This file makes the 'utils' directory a Python package.

from .errors import (
    AppError,
    InvalidGeometryError,
    InvalidBufferError,
    BufferMismatchError,
    RenderError,
    ModelUnavailableError,
    BufferAllocationError,
    ExportError,
    UnknownFilterError,
    ErrorCategory,
    log_and_continue,
    format_user_error,
)

from .geometry import (
    CropRect, AspectRatio, ASPECT_RATIOS,
    find_aspect_ratio, center_crop_rect, normalized_to_rect,
    crop_image, rotate_90,
)
from .image_proxy import (
    ImageProxyInfo, create_proxy,
    resize_exact, scale_image, estimate_memory_usage,
)

__all__ = [
    # Errors
    'AppError',
    'InvalidGeometryError',
    'InvalidBufferError',
    'BufferMismatchError',
    'RenderError',
    'ModelUnavailableError',
    'BufferAllocationError',
    'ExportError',
    'UnknownFilterError',
    'ErrorCategory',
    'log_and_continue',
    'format_user_error',
    # Geometry
    'CropRect',
    'AspectRatio',
    'ASPECT_RATIOS',
    'find_aspect_ratio',
    'center_crop_rect',
    'normalized_to_rect',
    'crop_image',
    'rotate_90',
    # Proxies
    'ImageProxyInfo',
    'create_proxy',
    'resize_exact',
    'scale_image',
    'estimate_memory_usage',
]
