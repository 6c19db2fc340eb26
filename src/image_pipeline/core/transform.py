"""
transform.py: Pixel transformations applied by the workers.

Provides aspect-preserving target size calculation, bilinear resize and
luminance grayscale conversion on PixelBuffers, plus the two interchangeable
TransformBackend implementations (``native`` and ``pillow``). A backend is
picked once by name with get_backend(); nothing switches at runtime.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple, Type, Union

import numpy as np
from PIL import Image

from . import wire_codec
from .errors import MalformedBuffer
from .pixel_buffer import PixelBuffer
from ..utils.log_utils import get_logger

logger = get_logger(__name__)

# ITU-R 601 luma weights, scaled to integers so truncation is exact.
LUMA_WEIGHTS = (299, 587, 114)
LUMA_SCALE = 1000


def compute_target_dimensions(src_w: int, src_h: int, max_w: int, max_h: int) -> Tuple[int, int]:
    """
    Fit ``src_w x src_h`` inside ``max_w x max_h`` keeping the aspect ratio.

    Width is clamped first (height scaled with integer truncation); if the
    height still exceeds ``max_h`` it is clamped and the width rescaled from the
    source aspect ratio. Images that already fit are returned unchanged, so
    nothing is ever upscaled. Both results are at least 1.
    """
    if src_w <= 0 or src_h <= 0:
        raise MalformedBuffer(f"Source dimensions must be positive, got {src_w}x{src_h}")
    if max_w <= 0 or max_h <= 0:
        raise ValueError(f"Bounds must be positive, got {max_w}x{max_h}")

    dst_w, dst_h = src_w, src_h
    if src_w > max_w:
        dst_w = max_w
        dst_h = max_w * src_h // src_w
    if dst_h > max_h:
        dst_h = max_h
        dst_w = max_h * src_w // src_h
    return max(dst_w, 1), max(dst_h, 1)


def _as_array(buf: PixelBuffer) -> np.ndarray:
    """View the buffer as a read-only (height, width, channels) uint8 array."""
    buf.validate()
    return np.frombuffer(buf.data, dtype=np.uint8).reshape(buf.height, buf.width, buf.channels)


def resize(src: PixelBuffer, dst_w: int, dst_h: int) -> PixelBuffer:
    """
    Bilinear resize of ``src`` to ``dst_w x dst_h``.

    Destination pixel (x, y) samples the source at
    ``(x * src_w / dst_w, y * src_h / dst_h)`` and blends the four surrounding
    pixels per channel. Neighbours past the right/bottom edge are clamped to
    the last column/row. Values are truncated toward zero.
    """
    if dst_w <= 0 or dst_h <= 0:
        raise ValueError(f"Target dimensions must be positive, got {dst_w}x{dst_h}")
    pixels = _as_array(src)

    xs = np.arange(dst_w, dtype=np.float64) * (src.width / dst_w)
    ys = np.arange(dst_h, dtype=np.float64) * (src.height / dst_h)
    x1 = np.clip(np.floor(xs).astype(np.intp), 0, src.width - 1)
    y1 = np.clip(np.floor(ys).astype(np.intp), 0, src.height - 1)
    x2 = np.minimum(x1 + 1, src.width - 1)
    y2 = np.minimum(y1 + 1, src.height - 1)
    dx = (xs - x1)[np.newaxis, :, np.newaxis]
    dy = (ys - y1)[:, np.newaxis, np.newaxis]

    upper = pixels[y1]
    lower = pixels[y2]
    top_left = upper[:, x1].astype(np.float64)
    top_right = upper[:, x2].astype(np.float64)
    bottom_left = lower[:, x1].astype(np.float64)
    bottom_right = lower[:, x2].astype(np.float64)

    # a + (b - a) * t keeps flat regions exact (no 255 -> 254 drift).
    top = top_left + (top_right - top_left) * dx
    bottom = bottom_left + (bottom_right - bottom_left) * dx
    out = top + (bottom - top) * dy

    return PixelBuffer(dst_w, dst_h, src.channels, out.astype(np.uint8).tobytes())


def to_grayscale(src: PixelBuffer) -> PixelBuffer:
    """
    Reduce ``src`` to a single luminance channel.

    RGB(A) input uses ``0.299 R + 0.587 G + 0.114 B`` truncated toward zero;
    alpha is dropped. One- and two-channel input keeps its first channel.
    """
    pixels = _as_array(src)
    if src.channels >= 3:
        rgb = pixels[..., :3].astype(np.uint32)
        r_w, g_w, b_w = LUMA_WEIGHTS
        gray = (rgb[..., 0] * r_w + rgb[..., 1] * g_w + rgb[..., 2] * b_w) // LUMA_SCALE
    else:
        gray = pixels[..., 0]
    return PixelBuffer(src.width, src.height, 1, gray.astype(np.uint8).tobytes())


class TransformBackend(ABC):
    """Resize + grayscale implementation used by a worker for a whole run."""

    name = ""

    @abstractmethod
    def resize(self, buf: PixelBuffer, dst_w: int, dst_h: int) -> PixelBuffer:
        pass

    @abstractmethod
    def to_grayscale(self, buf: PixelBuffer) -> PixelBuffer:
        pass

    def transform(self, buf: PixelBuffer, max_w: int, max_h: int) -> PixelBuffer:
        """Fit ``buf`` inside ``max_w x max_h`` (resizing only if needed), then grayscale it."""
        buf.validate()
        dst_w, dst_h = compute_target_dimensions(buf.width, buf.height, max_w, max_h)
        if (dst_w, dst_h) != buf.size:
            logger.debug("Resizing %dx%d -> %dx%d (%s)", buf.width, buf.height, dst_w, dst_h, self.name)
            buf = self.resize(buf, dst_w, dst_h)
        return self.to_grayscale(buf)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NativeBackend(TransformBackend):
    """The numpy implementation in this module."""

    name = "native"

    def resize(self, buf: PixelBuffer, dst_w: int, dst_h: int) -> PixelBuffer:
        return resize(buf, dst_w, dst_h)

    def to_grayscale(self, buf: PixelBuffer) -> PixelBuffer:
        return to_grayscale(buf)


class PillowBackend(TransformBackend):
    """Delegates to Pillow's bilinear filter and ``L`` conversion (rounds instead of truncating)."""

    name = "pillow"

    def resize(self, buf: PixelBuffer, dst_w: int, dst_h: int) -> PixelBuffer:
        buf.validate()
        img = Image.frombytes(buf.mode, buf.size, buf.data)
        resized = img.resize((dst_w, dst_h), resample=Image.Resampling.BILINEAR)
        return PixelBuffer(dst_w, dst_h, buf.channels, resized.tobytes())

    def to_grayscale(self, buf: PixelBuffer) -> PixelBuffer:
        buf.validate()
        if buf.channels == 1:
            return buf
        img = Image.frombytes(buf.mode, buf.size, buf.data)
        return PixelBuffer(buf.width, buf.height, 1, img.convert("L").tobytes())


BACKENDS: Dict[str, Type[TransformBackend]] = {
    NativeBackend.name: NativeBackend,
    PillowBackend.name: PillowBackend,
}

DEFAULT_BACKEND = NativeBackend.name


def get_backend(name: Union[str, TransformBackend, None] = None) -> TransformBackend:
    """Return a backend instance by name (``native`` when omitted)."""
    if isinstance(name, TransformBackend):
        return name
    key = (name or DEFAULT_BACKEND).lower()
    try:
        return BACKENDS[key]()
    except KeyError:
        raise ValueError(
            f"Unknown transform backend '{name}'. Available: {', '.join(sorted(BACKENDS))}"
        ) from None


def process_image(payload: bytes, max_w: int, max_h: int,
                  backend: Optional[TransformBackend] = None) -> bytes:
    """Wire-format in, wire-format out: decode, fit + grayscale, re-encode."""
    backend = backend or get_backend()
    src = wire_codec.decode(payload)
    result = backend.transform(src, max_w, max_h)
    return wire_codec.encode(result)
