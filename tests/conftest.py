"""Shared pytest configuration and fixtures for the image pipeline test suite."""

import io
from pathlib import Path
from typing import Callable, Tuple

import pytest
from PIL import Image

from image_pipeline.core.pixel_buffer import PixelBuffer


def gradient_image(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """Deterministic RGB gradient, converted to ``mode``."""
    img = Image.new("RGB", (width, height))
    img.putdata([
        ((x * 255) // max(width - 1, 1), (y * 255) // max(height - 1, 1), ((x + y) * 255) // max(width + height - 2, 1))
        for y in range(height)
        for x in range(width)
    ])
    return img if mode == "RGB" else img.convert(mode)


def encode_image(img: Image.Image, fmt: str = "PNG") -> bytes:
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def gradient() -> Callable[..., Image.Image]:
    return gradient_image


@pytest.fixture
def encode() -> Callable[..., bytes]:
    return encode_image


@pytest.fixture
def make_buffer() -> Callable[..., PixelBuffer]:
    """Build a PixelBuffer from a flat list of channel values."""
    def _make(width: int, height: int, channels: int, values=None) -> PixelBuffer:
        if values is None:
            values = [(i * 37) % 256 for i in range(width * height * channels)]
        return PixelBuffer(width, height, channels, bytes(values))
    return _make


@pytest.fixture
def write_image(tmp_path) -> Callable[..., Path]:
    """Write a gradient image into tmp_path/input and return its path."""
    input_dir = tmp_path / "input"
    input_dir.mkdir(exist_ok=True)

    def _write(name: str, size: Tuple[int, int] = (200, 100), mode: str = "RGB",
               fmt: str = "PNG") -> Path:
        path = input_dir / name
        path.write_bytes(encode_image(gradient_image(*size, mode=mode), fmt))
        return path
    return _write


@pytest.fixture
def output_dir(tmp_path) -> Path:
    out = tmp_path / "output"
    out.mkdir()
    return out
