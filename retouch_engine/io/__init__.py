# IO package initialization
from .image_loader import (
    load_image,
    is_supported_image,
    SUPPORTED_EXTENSIONS,
)
from .image_saver import (
    save_image,
    FORMATS,
)

__all__ = [
    'load_image',
    'is_supported_image',
    'SUPPORTED_EXTENSIONS',
    'save_image',
    'FORMATS',
]
