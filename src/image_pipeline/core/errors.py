"""
Error taxonomy for the image pipeline.

Every error carries a ``kind`` string that is reported as ``errorKind`` in
failure records, so callers never need to inspect exception classes.
"""

from typing import Optional, Union
from pathlib import Path


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    kind = "PipelineError"


class MalformedBuffer(PipelineError):
    """A PixelBuffer whose byte length does not match its dimensions."""

    kind = "MalformedBuffer"


class WireFormatError(PipelineError):
    """Base class for raw wire format decode failures."""

    kind = "WireFormatError"


class TruncatedHeader(WireFormatError):
    kind = "TruncatedHeader"


class MalformedHeader(WireFormatError):
    kind = "MalformedHeader"


class TruncatedPayload(WireFormatError):
    kind = "TruncatedPayload"


class ImageIOError(PipelineError, OSError):
    """Read or write failure, carrying the path involved."""

    kind = "IOError"

    def __init__(self, path: Union[str, Path], cause: Union[str, Exception]):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"{self.path}: {cause}")

    def __str__(self) -> str:
        return f"{self.path}: {self.cause}"


class CodecError(PipelineError):
    """The compressed-image codec could not decode or encode an image."""

    kind = "CodecError"


class WorkerTimeout(PipelineError):
    kind = "WorkerTimeout"


class WorkerFault(PipelineError):
    """Uncaught failure inside a worker, or a worker that died."""

    kind = "WorkerFault"

    def __init__(self, message: str, worker_id: Optional[int] = None):
        self.worker_id = worker_id
        super().__init__(message)


class SourceDirectoryError(PipelineError):
    """The source directory is missing or unreadable; fatal for the run."""

    kind = "SourceDirectoryError"


class ConfigError(PipelineError, ValueError):
    kind = "ConfigError"


def error_kind(err: BaseException) -> str:
    """Return the errorKind reported for ``err``."""
    if isinstance(err, PipelineError):
        return err.kind
    return WorkerFault.kind
