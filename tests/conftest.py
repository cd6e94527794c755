import pytest
import numpy as np


@pytest.fixture
def sample_image_uint8():
    """Returns a simple 100x100 uint8 RGBA image."""
    img = np.zeros((100, 100, 4), dtype=np.uint8)
    img[:50, :50] = [255, 0, 0, 255]    # Red quadrant
    img[:50, 50:] = [0, 255, 0, 255]    # Green quadrant
    img[50:, :50] = [0, 0, 255, 255]    # Blue quadrant
    img[50:, 50:] = [255, 255, 0, 255]  # Yellow quadrant
    return img


@pytest.fixture
def gray_image():
    """Returns a flat mid-gray 100x100 RGBA image."""
    return np.full((100, 100, 4), [128, 128, 128, 255], dtype=np.uint8)


@pytest.fixture
def noisy_image():
    """Returns a deterministic 64x48 RGBA image with texture."""
    rng = np.random.default_rng(1234)
    img = rng.integers(0, 256, size=(48, 64, 4), dtype=np.uint8)
    img[..., 3] = 255
    return img


@pytest.fixture
def circle_mask():
    """Returns a 100x100 mask with a solid circle (alpha 255) at the centre."""
    mask = np.zeros((100, 100, 4), dtype=np.uint8)
    yy, xx = np.mgrid[:100, :100]
    inside = (xx - 50) ** 2 + (yy - 50) ** 2 <= 20 ** 2
    mask[inside] = [255, 255, 255, 255]
    return mask


class FakeInput:
    def __init__(self, name):
        self.name = name


class FakeOnnxSession:
    """Stands in for an onnxruntime.InferenceSession."""

    def __init__(self, input_names=("image", "mask"), fill_value=0.5, output_shape=None):
        self._inputs = [FakeInput(n) for n in input_names]
        self.fill_value = fill_value
        self.output_shape = output_shape
        self.calls = []

    def get_inputs(self):
        return self._inputs

    def run(self, output_names, feeds):
        self.calls.append(feeds)
        image = next(iter(feeds.values()))
        shape = self.output_shape or (1, 3) + image.shape[2:]
        return [np.full(shape, self.fill_value, dtype=np.float32)]


@pytest.fixture
def fake_session_factory():
    """Returns (factory, created_sessions) where factory builds FakeOnnxSession objects."""
    created = []

    def factory(model_path, providers, **kwargs):
        session = FakeOnnxSession(**kwargs)
        created.append(session)
        return session

    return factory, created
