"""Tests for the raw pixel wire format."""

import struct

import pytest

from image_pipeline.core import wire_codec
from image_pipeline.core.errors import (
    MalformedHeader,
    TruncatedHeader,
    TruncatedPayload,
    WireFormatError,
)
from image_pipeline.core.pixel_buffer import PixelBuffer


class TestEncode:
    """Tests for wire_codec.encode()."""

    def test_header_is_big_endian(self):
        data = wire_codec.encode(PixelBuffer(1, 2, 3, bytes(6)))
        assert data[:12] == b"\x00\x00\x00\x01\x00\x00\x00\x02\x00\x00\x00\x03"

    def test_length_is_header_plus_payload(self, make_buffer):
        buf = make_buffer(7, 5, 4)
        data = wire_codec.encode(buf)
        assert len(data) == 12 + 7 * 5 * 4
        assert data[12:] == buf.data

    def test_round_trip(self, make_buffer):
        for channels in (1, 2, 3, 4):
            buf = make_buffer(3, 2, channels)
            assert wire_codec.decode(wire_codec.encode(buf)) == buf


class TestDecode:
    """Tests for wire_codec.decode() error handling."""

    def test_truncated_header(self):
        with pytest.raises(TruncatedHeader):
            wire_codec.decode(b"\x00" * 11)

    def test_empty_input(self):
        with pytest.raises(TruncatedHeader):
            wire_codec.decode(b"")

    @pytest.mark.parametrize("width,height,channels", [
        (0, 10, 3),
        (10, 0, 3),
        (-1, 10, 3),
        (10, 10, 0),
        (10, 10, 5),
    ])
    def test_malformed_header(self, width, height, channels):
        data = struct.pack(">iii", width, height, channels) + bytes(1000)
        with pytest.raises(MalformedHeader):
            wire_codec.decode(data)

    def test_truncated_payload(self):
        data = struct.pack(">iii", 4, 4, 3) + bytes(47)
        with pytest.raises(TruncatedPayload):
            wire_codec.decode(data)

    def test_trailing_bytes_ignored(self):
        data = struct.pack(">iii", 2, 1, 1) + b"\x10\x20" + b"garbage"
        buf = wire_codec.decode(data)
        assert buf == PixelBuffer(2, 1, 1, b"\x10\x20")

    def test_errors_share_base_class(self):
        for data in (b"", struct.pack(">iii", 0, 1, 1), struct.pack(">iii", 1, 1, 1)):
            with pytest.raises(WireFormatError):
                wire_codec.decode(data)

    def test_read_header(self):
        assert wire_codec.read_header(struct.pack(">iii", 640, 480, 3)) == (640, 480, 3)
