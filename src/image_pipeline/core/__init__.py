"""
Core functionality: pixel transforms, wire codec, workers and job distribution.
"""

from .pixel_buffer import PixelBuffer
from .errors import (
    PipelineError,
    MalformedBuffer,
    WireFormatError,
    TruncatedHeader,
    MalformedHeader,
    TruncatedPayload,
    ImageIOError,
    CodecError,
    WorkerTimeout,
    WorkerFault,
    SourceDirectoryError,
    ConfigError,
)
from .transform import (
    compute_target_dimensions,
    resize,
    to_grayscale,
    process_image,
    TransformBackend,
    NativeBackend,
    PillowBackend,
    get_backend,
)
from .image_encoder import decode_to_raw, encode_from_raw
from .jobs import Job, JobState, JobRequest, JobResult, WorkerSlot, SlotState
from .workers import ImageWorker, WorkerPool
from .distributor import TaskDistributor, process_images, process_images_async

__all__ = [
    "PixelBuffer",
    "PipelineError",
    "MalformedBuffer",
    "WireFormatError",
    "TruncatedHeader",
    "MalformedHeader",
    "TruncatedPayload",
    "ImageIOError",
    "CodecError",
    "WorkerTimeout",
    "WorkerFault",
    "SourceDirectoryError",
    "ConfigError",
    "compute_target_dimensions",
    "resize",
    "to_grayscale",
    "process_image",
    "TransformBackend",
    "NativeBackend",
    "PillowBackend",
    "get_backend",
    "decode_to_raw",
    "encode_from_raw",
    "Job",
    "JobState",
    "JobRequest",
    "JobResult",
    "WorkerSlot",
    "SlotState",
    "ImageWorker",
    "WorkerPool",
    "TaskDistributor",
    "process_images",
    "process_images_async",
]
