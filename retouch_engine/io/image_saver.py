# Export functionality using Pillow
import os
import tempfile
from typing import Optional

import numpy as np
from PIL import Image

from ..config import settings
from ..utils.errors import ExportError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Pillow format name per extension
FORMATS = {
    '.jpg': 'JPEG',
    '.jpeg': 'JPEG',
    '.png': 'PNG',
    '.webp': 'WEBP',
    '.tif': 'TIFF',
    '.tiff': 'TIFF',
}


def save_image(
    image: np.ndarray,
    file_path: str,
    quality: Optional[int] = None,
    png_compression: Optional[int] = None,
) -> str:
    """Saves an RGB or RGBA image atomically using Pillow.

    The encoded file is written to a temporary file in the destination
    directory and moved into place with os.replace, so a failed export never
    leaves a partial file behind. JPEG output drops the alpha channel.

    Args:
        image (numpy.ndarray): uint8 image, (H, W, 3) or (H, W, 4).
        file_path (str): Destination path; the extension selects the format.
        quality (int): JPEG/WebP quality (1-100).
        png_compression (int): Compression level for PNG (0-9).

    Returns:
        str: The path that was written.

    Raises:
        ExportError: If the image or path is invalid or writing fails.
    """
    quality = settings.EXPORT_DEFAULTS["default_jpeg_quality"] if quality is None else quality
    png_compression = (
        settings.EXPORT_DEFAULTS["default_png_compression"] if png_compression is None else png_compression
    )

    if image is None or image.size == 0:
        raise ExportError("Cannot save an empty image.", file_path=file_path)

    if not isinstance(file_path, str) or not file_path:
        raise ExportError("Invalid file path provided for saving.", file_path=file_path)

    if image.dtype != np.uint8:
        logger.warning("Image data type is not uint8. Clipping and converting.")
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ExportError(f"Unsupported image shape {image.shape}", file_path=file_path)

    ext = os.path.splitext(file_path)[1].lower()
    fmt = FORMATS.get(ext)
    if fmt is None:
        raise ExportError(f"Unsupported export format '{ext}'", file_path=file_path)

    save_kwargs = {}
    if fmt == 'JPEG':
        image = image[..., :3]
        save_kwargs['quality'] = max(1, min(100, int(quality)))
        save_kwargs['optimize'] = True
    elif fmt == 'WEBP':
        save_kwargs['quality'] = max(1, min(100, int(quality)))
    elif fmt == 'PNG':
        save_kwargs['compress_level'] = max(0, min(9, int(png_compression)))
    elif fmt == 'TIFF':
        save_kwargs['compression'] = 'tiff_lzw'

    output_dir = os.path.dirname(os.path.abspath(file_path))
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        raise ExportError(f"Could not create directory '{output_dir}'", file_path=file_path,
                          original_error=e) from e

    temp_path = None
    try:
        fd, temp_path = tempfile.mkstemp(prefix='.export-', suffix=ext, dir=output_dir)
        with os.fdopen(fd, 'wb') as handle:
            Image.fromarray(np.ascontiguousarray(image)).save(handle, format=fmt, **save_kwargs)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, file_path)
    except (OSError, ValueError) as e:
        if temp_path and os.path.exists(temp_path):
            os.remove(temp_path)
        raise ExportError(f"Failed to write '{file_path}': {e}", file_path=file_path,
                          original_error=e) from e

    logger.info("Image saved successfully to: %s", file_path)
    return file_path
