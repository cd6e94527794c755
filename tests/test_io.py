"""Tests for image I/O functionality."""

import os

import numpy as np
import pytest
from PIL import Image

from retouch_engine.io.image_loader import SUPPORTED_EXTENSIONS, is_supported_image, load_image
from retouch_engine.io.image_saver import FORMATS, save_image
from retouch_engine.utils.errors import ExportError


class TestImageLoader:
    """Tests for image loading functionality."""

    def test_load_nonexistent_file(self):
        """Loading nonexistent file should return None."""
        assert load_image("/nonexistent/path/to/image.jpg") is None

    def test_load_invalid_path(self):
        assert load_image("") is None
        assert load_image(None) is None

    def test_load_corrupted_file(self, tmp_path):
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"not an image at all")
        assert load_image(str(path)) is None

    def test_load_rgb_becomes_rgba(self, tmp_path):
        path = str(tmp_path / "rgb.png")
        Image.new("RGB", (12, 8), (10, 20, 30)).save(path)
        image = load_image(path)
        assert image.shape == (8, 12, 4)
        assert list(image[0, 0]) == [10, 20, 30, 255]

    def test_load_applies_exif_orientation(self, tmp_path):
        path = str(tmp_path / "rotated.jpg")
        exif = Image.Exif()
        exif[0x0112] = 6  # Rotate 90 CW on display
        Image.new("RGB", (40, 20), (0, 0, 0)).save(path, exif=exif)
        assert load_image(path).shape[:2] == (40, 20)

    def test_load_with_max_side(self, tmp_path):
        path = str(tmp_path / "big.png")
        Image.new("RGBA", (400, 200)).save(path)
        assert load_image(path, max_side=100).shape == (50, 100, 4)

    def test_supported_extensions(self):
        assert '.jpg' in SUPPORTED_EXTENSIONS
        assert is_supported_image("photo.JPEG")
        assert not is_supported_image("notes.txt")


class TestImageSaver:
    """Tests for image saving functionality."""

    def test_save_none_image(self, tmp_path):
        with pytest.raises(ExportError):
            save_image(None, str(tmp_path / "x.png"))

    def test_save_empty_image(self, tmp_path):
        with pytest.raises(ExportError):
            save_image(np.zeros((0, 0, 4), dtype=np.uint8), str(tmp_path / "x.png"))

    def test_save_invalid_path(self, sample_image_uint8):
        with pytest.raises(ExportError):
            save_image(sample_image_uint8, "")

    def test_save_wrong_channels(self, tmp_path):
        with pytest.raises(ExportError):
            save_image(np.zeros((4, 4, 2), dtype=np.uint8), str(tmp_path / "x.png"))

    def test_save_unknown_extension(self, sample_image_uint8, tmp_path):
        with pytest.raises(ExportError):
            save_image(sample_image_uint8, str(tmp_path / "x.gif"))
        assert os.listdir(tmp_path) == []

    def test_save_and_load_png(self, sample_image_uint8, tmp_path):
        path = save_image(sample_image_uint8, str(tmp_path / "out.png"))
        assert np.array_equal(load_image(path), sample_image_uint8)

    def test_save_and_load_jpeg(self, sample_image_uint8, tmp_path):
        path = save_image(sample_image_uint8, str(tmp_path / "out.jpg"), quality=95)
        loaded = load_image(path)
        assert loaded.shape == sample_image_uint8.shape
        assert np.all(loaded[..., 3] == 255)
        # Lossy, but the quadrant colours survive
        assert np.abs(loaded[25, 25, :3].astype(int) - [255, 0, 0]).max() < 10

    def test_save_creates_directory(self, sample_image_uint8, tmp_path):
        path = str(tmp_path / "nested" / "dir" / "out.webp")
        save_image(sample_image_uint8, path)
        assert os.path.isfile(path)

    def test_save_overwrites_atomically(self, sample_image_uint8, gray_image, tmp_path):
        path = str(tmp_path / "out.png")
        save_image(sample_image_uint8, path)
        save_image(gray_image, path)
        assert os.listdir(tmp_path) == ["out.png"]
        assert np.array_equal(load_image(path), gray_image)

    def test_formats_table(self):
        assert FORMATS['.jpeg'] == 'JPEG'
        assert FORMATS['.tif'] == 'TIFF'
