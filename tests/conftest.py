"""
Shared fixtures for the cascii tests.
"""

import pytest
from PIL import Image

from cascii_buffer import PixelBuffer


@pytest.fixture
def make_buffer():
    """Factory for solid-colour buffers."""
    def _make(width, height, channels=3, value=0):
        return PixelBuffer(width, height, channels, bytes([value]) * (width * height * channels))
    return _make


@pytest.fixture
def white_png(tmp_path):
    path = tmp_path / "white.png"
    Image.new("RGB", (2, 2), (255, 255, 255)).save(path)
    return str(path)


@pytest.fixture
def save_image(tmp_path):
    """Write a Pillow image into tmp_path and return its path as str."""
    def _save(img, name="img.png"):
        path = tmp_path / name
        img.save(path)
        return str(path)
    return _save
