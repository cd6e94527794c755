"""Tests for the content-fill engine and the inpainting model service."""

import functools
import threading

import numpy as np
import pytest

from retouch_engine.processing.compositor import MaskCompositor
from retouch_engine.processing.content_fill import (
    BlurBlendFillStrategy,
    ContentFillEngine,
    InpaintModelService,
    ModelState,
    match_input_names,
    prepare_inputs,
    tensor_to_rgb,
)
from retouch_engine.utils.errors import BufferMismatchError, ModelUnavailableError


class TestMatchInputNames:
    """Tests for model input discovery."""

    def test_named_inputs(self):
        assert match_input_names(["mask", "image"]) == ("image", "mask")

    def test_case_insensitive_substring(self):
        assert match_input_names(["Input_Mask", "InputImage"]) == ("InputImage", "Input_Mask")

    def test_positional_fallback(self):
        assert match_input_names(["x0", "x1"]) == ("x0", "x1")

    def test_partial_match(self):
        assert match_input_names(["masks", "pixels"]) == ("pixels", "masks")

    def test_too_few_inputs(self):
        with pytest.raises(ModelUnavailableError):
            match_input_names(["image"])


class TestTensors:
    """Tests for the tensor layout helpers."""

    def test_prepare_inputs_layout(self, noisy_image):
        image = noisy_image
        mask = np.zeros_like(image)
        mask[..., 3] = 255
        image_tensor, mask_tensor = prepare_inputs(image, mask, 32)
        assert image_tensor.shape == (1, 3, 32, 32)
        assert mask_tensor.shape == (1, 1, 32, 32)
        assert image_tensor.dtype == np.float32
        assert 0.0 <= image_tensor.min() and image_tensor.max() <= 1.0
        assert np.all(mask_tensor == 1.0)

    def test_tensor_to_rgb_clamps_and_resizes(self):
        output = np.full((1, 3, 16, 16), 2.0, dtype=np.float32)
        output[0, 1] = -1.0
        rgb = tensor_to_rgb(output, 16, 40, 20)
        assert rgb.shape == (20, 40, 3)
        assert np.all(rgb[..., 0] == 255)
        assert np.all(rgb[..., 1] == 0)

    def test_tensor_to_rgb_truncates(self):
        output = np.full((1, 3, 8, 8), 0.5, dtype=np.float32)
        assert np.all(tensor_to_rgb(output, 8, 8, 8) == 127)

    def test_tensor_to_rgb_rejects_wrong_shape(self):
        with pytest.raises(ModelUnavailableError):
            tensor_to_rgb(np.zeros((1, 3, 8, 9), dtype=np.float32), 8, 8, 8)


class TestInpaintModelService:
    """Tests for model loading state."""

    def test_missing_model_is_fallback_only(self, tmp_path):
        service = InpaintModelService(str(tmp_path / "missing.onnx"))
        assert service.state == ModelState.UNINITIALIZED
        assert service.ensure_loaded() is False
        assert service.state == ModelState.FALLBACK_ONLY
        assert isinstance(service.load_error, ModelUnavailableError)

    def test_failed_load_is_not_retried(self):
        calls = []

        def failing_factory(model_path, providers):
            calls.append(model_path)
            raise RuntimeError("corrupt model")

        service = InpaintModelService("model.onnx", session_factory=failing_factory)
        assert not service.ensure_loaded()
        assert not service.ensure_loaded()
        assert len(calls) == 1

    def test_ready_with_fake_session(self, fake_session_factory):
        factory, created = fake_session_factory
        service = InpaintModelService("model.onnx", session_factory=factory)
        assert service.ensure_loaded()
        assert service.is_ready
        assert service.input_names == ("image", "mask")
        assert len(created) == 1

    def test_loads_once_across_threads(self, fake_session_factory):
        factory, created = fake_session_factory
        service = InpaintModelService("model.onnx", session_factory=factory)
        threads = [threading.Thread(target=service.ensure_loaded) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(created) == 1

    def test_providers_passed_to_factory(self):
        seen = {}

        def factory(model_path, providers):
            seen["providers"] = providers
            raise RuntimeError("stop")

        InpaintModelService("m.onnx", providers=["CPUExecutionProvider"], session_factory=factory).ensure_loaded()
        assert seen["providers"] == ["CPUExecutionProvider"]

    def test_close_moves_to_fallback(self, noisy_image, fake_session_factory):
        factory, created = fake_session_factory
        service = InpaintModelService("model.onnx", session_factory=factory)
        assert service.ensure_loaded()
        service.close()
        assert service.state == ModelState.FALLBACK_ONLY
        assert not service.is_ready

        engine = ContentFillEngine(service)
        mask = np.zeros_like(noisy_image)
        mask[..., 3] = 255
        engine.inpaint(noisy_image, mask)
        assert engine.last_path == "fallback"
        assert len(created) == 1

    def test_run_when_unavailable_raises(self, tmp_path):
        service = InpaintModelService(str(tmp_path / "missing.onnx"))
        with pytest.raises(ModelUnavailableError):
            service.run(np.zeros((1, 3, 4, 4), np.float32), np.zeros((1, 1, 4, 4), np.float32))


class TestContentFillEngine:
    """Tests for ContentFillEngine.inpaint."""

    def test_fallback_matches_soft_blur(self, noisy_image, tmp_path):
        mask = np.zeros_like(noisy_image)
        mask[10:30, 20:40] = 255
        engine = ContentFillEngine(InpaintModelService(str(tmp_path / "missing.onnx")))
        result = engine.inpaint(noisy_image, mask)
        expected = MaskCompositor().soft_blur(noisy_image, mask, 18)
        assert engine.last_path == "fallback"
        assert np.array_equal(result, expected)

    def test_no_service_uses_fallback(self, sample_image_uint8, circle_mask):
        engine = ContentFillEngine()
        result = engine.inpaint(sample_image_uint8, circle_mask)
        assert engine.last_path == "fallback"
        assert result.shape == sample_image_uint8.shape

    def test_fallback_deterministic(self, noisy_image):
        mask = np.zeros_like(noisy_image)
        mask[5:20, 5:20] = 255
        engine = ContentFillEngine()
        assert np.array_equal(engine.inpaint(noisy_image, mask), engine.inpaint(noisy_image, mask))

    def test_fallback_radius_clamped(self):
        assert BlurBlendFillStrategy(100).radius == 25.0
        assert BlurBlendFillStrategy(0).radius == 1.0

    def test_model_path(self, noisy_image, fake_session_factory):
        factory, created = fake_session_factory
        service = InpaintModelService("model.onnx", session_factory=factory)
        engine = ContentFillEngine(service)
        mask = np.zeros_like(noisy_image)
        mask[..., 3] = 255
        result = engine.inpaint(noisy_image, mask)

        assert engine.last_path == "model"
        assert result.shape == noisy_image.shape
        assert np.all(result[..., :3] == 127)
        assert np.array_equal(result[..., 3], noisy_image[..., 3])

        feeds = created[0].calls[0]
        assert feeds["image"].shape == (1, 3, 512, 512)
        assert feeds["mask"].shape == (1, 1, 512, 512)

    def test_custom_working_size(self, noisy_image, fake_session_factory):
        factory, created = fake_session_factory
        service = InpaintModelService("model.onnx", session_factory=factory)
        engine = ContentFillEngine(service, working_size=64)
        engine.inpaint(noisy_image, np.zeros_like(noisy_image))
        assert created[0].calls[0]["image"].shape == (1, 3, 64, 64)

    def test_wrong_output_shape_falls_back(self, noisy_image, fake_session_factory):
        factory, _ = fake_session_factory
        factory = functools.partial(factory, output_shape=(1, 3, 256, 256))
        engine = ContentFillEngine(InpaintModelService("model.onnx", session_factory=factory))
        mask = np.zeros_like(noisy_image)
        mask[..., 3] = 255
        result = engine.inpaint(noisy_image, mask)
        assert engine.last_path == "fallback"
        assert np.array_equal(result, MaskCompositor().soft_blur(noisy_image, mask, 18))

    def test_inference_error_falls_back(self, noisy_image):
        class BrokenSession:
            def get_inputs(self):
                return [type("I", (), {"name": n})() for n in ("image", "mask")]

            def run(self, output_names, feeds):
                raise RuntimeError("inference exploded")

        def factory(model_path, providers):
            return BrokenSession()

        service = InpaintModelService("model.onnx", session_factory=factory)
        engine = ContentFillEngine(service)
        engine.inpaint(noisy_image, np.zeros_like(noisy_image))
        assert engine.last_path == "fallback"
        assert service.is_ready

    def test_mask_size_mismatch(self, noisy_image):
        with pytest.raises(BufferMismatchError):
            ContentFillEngine().inpaint(noisy_image, np.zeros((10, 10, 4), dtype=np.uint8))

    def test_alpha_plane_mask_accepted(self, noisy_image):
        alpha = np.zeros(noisy_image.shape[:2], dtype=np.uint8)
        result = ContentFillEngine().inpaint(noisy_image, alpha)
        assert np.array_equal(result, noisy_image)
