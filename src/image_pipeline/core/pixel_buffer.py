from dataclasses import dataclass

from .errors import MalformedBuffer

MAX_CHANNELS = 4

# Pillow modes for each supported channel count.
CHANNEL_MODES = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}


@dataclass(frozen=True)
class PixelBuffer:
    """Raw row-major pixel data with its dimensions.

    Bytes are interleaved per pixel (``RGBRGB...``). The buffer is immutable and
    always satisfies ``len(data) == width * height * channels``.
    """

    width: int
    height: int
    channels: int
    data: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))
        self.validate()

    def validate(self) -> None:
        """Raise MalformedBuffer if the dimensions and byte length disagree."""
        if self.width <= 0 or self.height <= 0:
            raise MalformedBuffer(f"Invalid dimensions {self.width}x{self.height}")
        if not 1 <= self.channels <= MAX_CHANNELS:
            raise MalformedBuffer(f"Invalid channel count {self.channels}")
        if len(self.data) != self.expected_size:
            raise MalformedBuffer(
                f"Buffer holds {len(self.data)} bytes, expected {self.expected_size} "
                f"for {self.width}x{self.height}x{self.channels}"
            )

    @property
    def expected_size(self) -> int:
        return self.width * self.height * self.channels

    @property
    def size(self) -> tuple:
        return self.width, self.height

    @property
    def mode(self) -> str:
        """Pillow mode matching the channel count."""
        return CHANNEL_MODES[self.channels]

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height}x{self.channels}, {len(self.data)} bytes)"
