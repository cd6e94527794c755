# Content fill (object removal): inpainting model with a blur-blend fallback
"""
Content-fill strategies for the "remove object" feature.

The model path runs an ONNX inpainting network at a fixed square working
size. Whenever it is unavailable or fails, the deterministic blur-blend path
produces the result instead, so callers always get a full resolution image.
The model session is owned by an InpaintModelService that is created once
and injected into every engine that needs it.
"""

import os
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config import settings
from ..utils.errors import BufferMismatchError, ModelUnavailableError, log_and_continue, ErrorCategory
from ..utils.image_proxy import resize_exact
from ..utils.logger import get_logger
from .buffers import BufferPool, ensure_rgba
from .compositor import MaskCompositor, clamp_mask_radius

logger = get_logger(__name__)

_FILL = settings.CONTENT_FILL_DEFAULTS


class ModelState(Enum):
    """Lifecycle of the inpainting model session."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FALLBACK_ONLY = "fallback_only"


def _onnx_session_factory(model_path: str, providers: Sequence[str]):
    """Open an onnxruntime session with the first available preferred providers."""
    import onnxruntime as ort

    available = list(ort.get_available_providers())
    chosen = [p for p in providers if p in available]
    if "CPUExecutionProvider" not in chosen:
        chosen.append("CPUExecutionProvider")

    options = ort.SessionOptions()
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    logger.info("Opening inpainting model %s with providers %s", model_path, chosen)
    return ort.InferenceSession(str(model_path), sess_options=options, providers=chosen)


def match_input_names(names: Sequence[str]) -> Tuple[str, str]:
    """
    Pick the image and mask input names.

    Case-insensitive substring match on "image" and "mask"; positional
    order (image first, mask second) is used for whichever is not found.
    """
    names = list(names)
    if len(names) < 2:
        raise ModelUnavailableError(f"Inpainting model needs two inputs, found {names}")

    image_name = next((n for n in names if "image" in n.lower()), None)
    mask_name = next((n for n in names if "mask" in n.lower()), None)
    if image_name is None:
        image_name = names[0] if names[0] != mask_name else names[1]
    if mask_name is None:
        mask_name = names[1] if names[1] != image_name else names[0]
    return image_name, mask_name


class InpaintModelService:
    """
    Process-wide owner of the inpainting model session.

    Loads lazily on first use and memoises the outcome: a failed load moves
    the service to FALLBACK_ONLY and is never retried. ``run`` is serialised
    by a single inference lock so the session can be shared by workers.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        providers: Optional[Sequence[str]] = None,
        session_factory: Optional[Callable[[str, Sequence[str]], Any]] = None,
    ):
        self.model_path = model_path if model_path is not None else _FILL["model_path"]
        self.providers = list(providers) if providers is not None else list(_FILL["preferred_providers"])
        self._session_factory = session_factory
        self._session = None
        self._image_input: Optional[str] = None
        self._mask_input: Optional[str] = None
        self._state = ModelState.UNINITIALIZED
        self._init_lock = threading.Lock()
        self._inference_lock = threading.Lock()
        self.load_error: Optional[Exception] = None

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ModelState.READY

    @property
    def input_names(self) -> Tuple[Optional[str], Optional[str]]:
        return self._image_input, self._mask_input

    def ensure_loaded(self) -> bool:
        """Load the session on first call; returns True when the model is usable."""
        if self._state in (ModelState.READY, ModelState.FALLBACK_ONLY):
            return self._state == ModelState.READY

        with self._init_lock:
            if self._state != ModelState.UNINITIALIZED:
                return self._state == ModelState.READY
            self._state = ModelState.LOADING
            try:
                self._session = self._open_session()
                names = [inp.name for inp in self._session.get_inputs()]
                self._image_input, self._mask_input = match_input_names(names)
                self._state = ModelState.READY
                logger.info(
                    "Inpainting model ready (image input '%s', mask input '%s')",
                    self._image_input, self._mask_input,
                )
            except Exception as e:
                self._session = None
                self.load_error = e
                self._state = ModelState.FALLBACK_ONLY
                log_and_continue(
                    f"Inpainting model unavailable, using blur fallback: {e}",
                    category=ErrorCategory.MODEL,
                )
        return self._state == ModelState.READY

    def _open_session(self):
        if self._session_factory is not None:
            return self._session_factory(self.model_path, self.providers)
        if not os.path.isfile(self.model_path):
            raise ModelUnavailableError(
                f"Model file not found: {self.model_path}", model_path=self.model_path
            )
        return _onnx_session_factory(self.model_path, self.providers)

    def run(self, image_tensor: np.ndarray, mask_tensor: np.ndarray) -> np.ndarray:
        """Run one inference and return the first output tensor."""
        if not self.ensure_loaded():
            raise ModelUnavailableError("Inpainting model is not loaded", model_path=self.model_path)
        with self._inference_lock:
            outputs = self._session.run(
                None,
                {self._image_input: image_tensor, self._mask_input: mask_tensor},
            )
        if not outputs:
            raise ModelUnavailableError("Inpainting model returned no outputs", model_path=self.model_path)
        return np.asarray(outputs[0])

    def close(self) -> None:
        """Release the session; later runs take the fallback path."""
        with self._init_lock, self._inference_lock:
            self._session = None
            self._state = ModelState.FALLBACK_ONLY


def prepare_inputs(image: np.ndarray, mask: np.ndarray, size: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Planar float tensors for the model.

    Returns the image as (1, 3, size, size) RGB in [0, 1] and the mask as
    (1, 1, size, size) from its alpha plane in [0, 1].
    """
    rgb = resize_exact(image[..., :3], size, size, interpolation=cv2.INTER_LINEAR)
    alpha = resize_exact(mask[..., 3], size, size, interpolation=cv2.INTER_LINEAR)

    image_tensor = (rgb.astype(np.float32) / 255.0).transpose(2, 0, 1)[np.newaxis, ...]
    mask_tensor = (alpha.astype(np.float32) / 255.0)[np.newaxis, np.newaxis, ...]
    return np.ascontiguousarray(image_tensor), np.ascontiguousarray(mask_tensor)


def tensor_to_rgb(output: np.ndarray, size: int, width: int, height: int) -> np.ndarray:
    """Convert a (1, 3, size, size) output in [0, 1] back to (height, width, 3) uint8."""
    output = np.asarray(output, dtype=np.float32)
    if output.shape != (1, 3, size, size):
        raise ModelUnavailableError(f"Unexpected inpainting output shape {output.shape}")
    planes = np.clip(output[0], 0.0, 1.0) * 255.0
    rgb = np.ascontiguousarray(planes.astype(np.uint8).transpose(1, 2, 0))
    return resize_exact(rgb, width, height, interpolation=cv2.INTER_LINEAR)


class FillStrategy(ABC):
    """Abstract content-fill strategy."""

    @abstractmethod
    def fill(self, image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """
        Fill the masked region of ``image``.

        Args:
            image: (H, W, 4) uint8 source.
            mask: (H, W, 4) uint8 mask of the same size; alpha selects the region.

        Returns:
            (H, W, 4) uint8 result at the source resolution.
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass


class ModelFillStrategy(FillStrategy):
    """Inpainting through the shared model service."""

    def __init__(self, service: InpaintModelService, working_size: Optional[int] = None):
        self._service = service
        self._size = int(working_size) if working_size is not None else _FILL["working_size"]

    @property
    def name(self) -> str:
        return "model"

    def is_available(self) -> bool:
        return self._service.ensure_loaded()

    def fill(self, image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        image_tensor, mask_tensor = prepare_inputs(image, mask, self._size)
        output = self._service.run(image_tensor, mask_tensor)
        rgb = tensor_to_rgb(output, self._size, width, height)

        result = np.empty_like(image)
        result[..., :3] = rgb
        result[..., 3] = image[..., 3]
        return result


class BlurBlendFillStrategy(FillStrategy):
    """Blur the whole source and composite it through the mask."""

    def __init__(self, radius: Optional[float] = None, pool: Optional[BufferPool] = None):
        radius = _FILL["fallback_blur_radius"] if radius is None else radius
        self.radius = min(max(float(radius), _FILL["fallback_radius_min"]), _FILL["fallback_radius_max"])
        self._compositor = MaskCompositor(pool)

    @property
    def name(self) -> str:
        return "fallback"

    def is_available(self) -> bool:
        return True

    def fill(self, image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        return self._compositor.soft_blur(image, mask, clamp_mask_radius(self.radius))


class ContentFillEngine:
    """
    Removes masked content, preferring the model and falling back to blur-blend.

    ``last_path`` records which strategy produced the latest result.
    """

    def __init__(
        self,
        model_service: Optional[InpaintModelService] = None,
        working_size: Optional[int] = None,
        fallback_radius: Optional[float] = None,
        pool: Optional[BufferPool] = None,
    ):
        self._strategies: List[FillStrategy] = []
        if model_service is not None:
            self._strategies.append(ModelFillStrategy(model_service, working_size))
        self._fallback = BlurBlendFillStrategy(fallback_radius, pool)
        self.last_path: Optional[str] = None

    @property
    def fallback(self) -> BlurBlendFillStrategy:
        return self._fallback

    def inpaint(self, image: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Fill the region selected by ``mask`` and return a full resolution RGBA image."""
        image = ensure_rgba(image)
        mask = ensure_rgba(mask)
        if image.shape[:2] != mask.shape[:2]:
            raise BufferMismatchError(
                "Content fill mask does not match the image",
                expected=(image.shape[1], image.shape[0]),
                actual=(mask.shape[1], mask.shape[0]),
                step="content_fill",
            )

        for strategy in self._strategies:
            if not strategy.is_available():
                continue
            try:
                result = strategy.fill(image, mask)
                self.last_path = strategy.name
                return result
            except Exception as e:
                logger.warning("Content fill via %s failed, falling back: %s", strategy.name, e)

        result = self._fallback.fill(image, mask)
        self.last_path = self._fallback.name
        logger.debug("Content fill produced by %s", self.last_path)
        return result
