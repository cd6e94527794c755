# Pixel stage operators
"""
Unary pixel stages. Each writes into a caller-supplied destination buffer of
identical dimensions and never allocates a pixel buffer of its own.
"""

import math
from typing import Tuple

import cv2
import numpy as np

from ..config import settings
from ..utils.errors import InvalidBufferError
from ..utils.logger import get_logger
from .buffers import PixelBuffer, check_same_size
from .color_matrix import ColorMatrix

logger = get_logger(__name__)

BLUR_RADIUS_MIN = settings.PIPELINE_DEFAULTS["blur_radius_min"]
BLUR_RADIUS_MAX = settings.PIPELINE_DEFAULTS["blur_radius_max"]


def clamp_blur_radius(radius: float) -> float:
    return min(max(float(radius), BLUR_RADIUS_MIN), BLUR_RADIUS_MAX)


def gaussian_kernel_params(radius: float) -> Tuple[int, float]:
    """
    Kernel size and sigma for a blur radius.

    sigma = 0.4 * r + 0.6 and the kernel spans ceil(r) pixels each side.
    """
    radius = clamp_blur_radius(radius)
    ksize = 2 * int(math.ceil(radius)) + 1
    sigma = 0.4 * radius + 0.6
    return ksize, sigma


def _check_distinct(step: str, src: PixelBuffer, dst: PixelBuffer) -> None:
    if src is dst:
        raise InvalidBufferError(f"{step}: source and destination are the same buffer", step=step)


def _store(dst: PixelBuffer, out: np.ndarray) -> None:
    # cv2 returns the array it was given when it could write in place
    if out is not dst.data:
        np.copyto(dst.data, out)


def gaussian_blur(src: PixelBuffer, dst: PixelBuffer, radius: float) -> PixelBuffer:
    """Gaussian blur of all four channels with replicated borders."""
    check_same_size("blur", src, dst)
    _check_distinct("blur", src, dst)
    ksize, sigma = gaussian_kernel_params(radius)
    out = cv2.GaussianBlur(
        src.data,
        (ksize, ksize),
        sigma,
        dst=dst.data,
        sigmaY=sigma,
        borderType=cv2.BORDER_REPLICATE,
    )
    _store(dst, out)
    return dst


def convolve3x3(src: PixelBuffer, dst: PixelBuffer, kernel: np.ndarray) -> PixelBuffer:
    """Convolve RGB with a 3x3 kernel; alpha is carried over from the source."""
    check_same_size("convolve", src, dst)
    _check_distinct("convolve", src, dst)
    kernel = np.asarray(kernel, dtype=np.float32)
    if kernel.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 kernel, got {kernel.shape}")
    out = cv2.filter2D(
        src.data,
        -1,
        kernel,
        dst=dst.data,
        borderType=cv2.BORDER_REPLICATE,
    )
    _store(dst, out)
    dst.data[..., 3] = src.data[..., 3]
    return dst


def _affine_transform(matrix: ColorMatrix) -> np.ndarray:
    """4x5 cv2.transform matrix in 8-bit units, alpha row passing through."""
    m = np.zeros((4, 5), dtype=np.float64)
    m[:3, :3] = matrix.linear
    m[:3, 4] = matrix.offset * 255.0
    m[3, 3] = 1.0
    return m


def apply_color_matrix(src: PixelBuffer, dst: PixelBuffer, matrix: ColorMatrix) -> PixelBuffer:
    """Apply a color matrix to every pixel; results are rounded and saturated to 8 bit."""
    check_same_size("color_matrix", src, dst)
    _check_distinct("color_matrix", src, dst)
    out = cv2.transform(src.data, _affine_transform(matrix), dst=dst.data)
    _store(dst, out)
    return dst
