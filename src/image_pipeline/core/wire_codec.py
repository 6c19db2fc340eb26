"""
wire_codec.py: Fixed binary layout for moving raw pixels across the worker boundary.

Layout (big-endian)::

    offset 0   int32  width
    offset 4   int32  height
    offset 8   int32  channels
    offset 12  width * height * channels raw bytes

Bytes past the declared payload are ignored on decode.
"""

import struct
from typing import Tuple

from .errors import MalformedHeader, TruncatedHeader, TruncatedPayload
from .pixel_buffer import MAX_CHANNELS, PixelBuffer

HEADER = struct.Struct(">iii")
HEADER_SIZE = HEADER.size


def encode(buf: PixelBuffer) -> bytes:
    """Serialize ``buf`` as header + payload (``12 + w*h*c`` bytes)."""
    buf.validate()
    return HEADER.pack(buf.width, buf.height, buf.channels) + buf.data


def read_header(data: bytes) -> Tuple[int, int, int]:
    """Return ``(width, height, channels)`` from the header of ``data``.

    Raises:
        TruncatedHeader: fewer than 12 bytes.
        MalformedHeader: non-positive dimensions or a channel count outside 1..4.
    """
    if len(data) < HEADER_SIZE:
        raise TruncatedHeader(f"Need {HEADER_SIZE} header bytes, got {len(data)}")
    width, height, channels = HEADER.unpack_from(data, 0)
    if width <= 0 or height <= 0 or channels <= 0 or channels > MAX_CHANNELS:
        raise MalformedHeader(
            f"Invalid header: width={width} height={height} channels={channels}"
        )
    return width, height, channels


def decode(data: bytes) -> PixelBuffer:
    """Parse header + payload back into a PixelBuffer."""
    width, height, channels = read_header(data)
    expected = HEADER_SIZE + width * height * channels
    if len(data) < expected:
        raise TruncatedPayload(
            f"{width}x{height}x{channels} needs {expected} bytes, got {len(data)}"
        )
    return PixelBuffer(width, height, channels, bytes(data[HEADER_SIZE:expected]))
