#!/usr/bin/env python3
"""
image_encoder.py: Convert between compressed image files and raw PixelBuffers.

Decoding accepts anything Pillow can open (JPEG, PNG, BMP, TIFF, WebP, and
HEIC when pillow-heif is installed). Encoding always produces JPEG.

Usage:
    python3 -m image_pipeline.core.image_encoder <input> <output> [--quality 85]

Dependencies:
    pip install pillow pillow-heif
"""

import argparse
import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import CodecError
from .pixel_buffer import PixelBuffer
from ..utils.log_utils import configure_logging, get_logger, parse_log_level, LOG_LEVELS

logger = get_logger(__name__)

try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
    HEIF_SUPPORTED = True
except ImportError:
    HEIF_SUPPORTED = False

DEFAULT_QUALITY = 85

# Raw modes carried as-is; everything else is converted before leaving the codec.
RAW_MODES = {"L": 1, "LA": 2, "RGB": 3, "RGBA": 4}

WIDE_GRAY_MODES = ("I;16", "I;16B", "I;16L", "I;16N", "I")


def _normalize_mode(img: Image.Image) -> Image.Image:
    """Convert palette, CMYK, 16-bit and bilevel images to L/LA/RGB/RGBA."""
    if img.mode in RAW_MODES:
        return img
    if img.mode == "P" and "transparency" in img.info:
        return img.convert("RGBA")
    if img.mode in WIDE_GRAY_MODES:
        # 16-bit samples (``I`` holds them widened) keep their high byte.
        pixels = np.clip(np.asarray(img).astype(np.int64), 0, 0xFFFF) >> 8
        return Image.fromarray(pixels.astype(np.uint8))
    if img.mode in ("1", "F"):
        return img.convert("L")
    if img.mode == "PA":
        return img.convert("RGBA")
    return img.convert("RGB")


def decode_to_raw(data: bytes) -> PixelBuffer:
    """Decode compressed image bytes to a PixelBuffer.

    Args:
        data: Contents of an image file.

    Returns:
        PixelBuffer with 1, 2, 3 or 4 channels.

    Raises:
        CodecError: If Pillow cannot identify or decode the data.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img = _normalize_mode(img)
            return PixelBuffer(img.width, img.height, RAW_MODES[img.mode], img.tobytes())
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as err:
        raise CodecError(f"Cannot decode image: {err}") from err


def encode_from_raw(buf: PixelBuffer, quality: int = DEFAULT_QUALITY) -> bytes:
    """Encode a PixelBuffer as JPEG.

    JPEG has no alpha channel, so LA and RGBA input is flattened to L and RGB.
    """
    buf.validate()
    try:
        img = Image.frombytes(buf.mode, buf.size, buf.data)
        if img.mode == "LA":
            img = img.convert("L")
        elif img.mode == "RGBA":
            img = img.convert("RGB")
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality)
        return out.getvalue()
    except (OSError, ValueError) as err:
        raise CodecError(f"Cannot encode {buf!r} as JPEG: {err}") from err


def parse_args():
    # mainly used to test the codec on a single file
    parser = argparse.ArgumentParser(
        description="Decode an image to raw pixels and re-encode it as JPEG."
    )
    parser.add_argument("input", help="Path to the input image file.")
    parser.add_argument("output", help="Path of the JPEG file to write.")
    parser.add_argument(
        "--quality",
        type=int,
        default=DEFAULT_QUALITY,
        help=f"JPEG quality (default: {DEFAULT_QUALITY})."
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="info",
        help="Set logging level (default: info; 'none' disables logging)"
    )
    return parser.parse_args()


def main():
    args = parse_args()
    level = parse_log_level(args.log_level)
    if level is not None:
        configure_logging(level)
    with open(args.input, "rb") as f:
        buf = decode_to_raw(f.read())
    logger.info("Decoded %s: %r", args.input, buf)
    encoded = encode_from_raw(buf, args.quality)
    with open(args.output, "wb") as f:
        f.write(encoded)
    logger.info("Wrote %s (%d bytes)", args.output, len(encoded))


if __name__ == "__main__":
    main()
