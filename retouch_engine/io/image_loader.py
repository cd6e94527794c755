# Image import functionality using Pillow
import os
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..utils.image_proxy import create_proxy
from ..utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.tif', '.tiff', '.bmp', '.webp')


def is_supported_image(file_path: str) -> bool:
    return os.path.splitext(file_path)[1].lower() in SUPPORTED_EXTENSIONS


def load_image(file_path: str, max_side: Optional[int] = None) -> Optional[np.ndarray]:
    """Loads an image from the specified file path using Pillow.

    EXIF orientation is applied before the pixels are handed to the pipeline,
    and the result is always 8-bit RGBA.

    Args:
        file_path (str): The path to the image file.
        max_side (int): Optional bound on the longest side; larger images are
                        downscaled with area interpolation.

    Returns:
        numpy.ndarray: (H, W, 4) uint8 RGBA image, or None if loading fails.
    """
    if not isinstance(file_path, str) or not file_path:
        logger.error("Invalid file path provided.")
        return None

    if not os.path.isfile(file_path):
        logger.error("File not found at '%s'", file_path)
        return None

    try:
        with Image.open(file_path) as img:
            oriented = ImageOps.exif_transpose(img)
            if oriented.mode != 'RGBA':
                logger.debug("Converting image from mode '%s' to 'RGBA'.", oriented.mode)
                rgba = oriented.convert('RGBA')
            else:
                rgba = oriented
            image_np = np.array(rgba, dtype=np.uint8)
    except UnidentifiedImageError:
        logger.error("Pillow could not identify image file format or file is corrupted: '%s'", file_path)
        return None
    except OSError:
        logger.exception("Error loading image '%s'", file_path)
        return None

    if image_np.size == 0:
        logger.error("Loaded image is empty: '%s'", file_path)
        return None

    if max_side:
        image_np, info = create_proxy(image_np, max_side=max_side, interpolation=cv2.INTER_AREA)
        if info.is_proxy:
            logger.info(
                "Downscaled '%s' from %dx%d to %dx%d",
                os.path.basename(file_path),
                info.original_shape[1], info.original_shape[0],
                info.proxy_shape[1], info.proxy_shape[0],
            )

    logger.info("Loaded image '%s' (%dx%d)", file_path, image_np.shape[1], image_np.shape[0])
    return np.ascontiguousarray(image_np)
