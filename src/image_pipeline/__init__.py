"""
Image Pipeline

Resizes and grayscales batches of images across a pool of worker processes.
"""

__version__ = "0.1.0"

from .core import (
    PixelBuffer,
    TaskDistributor,
    WorkerPool,
    ImageWorker,
    Job,
    JobResult,
    process_images,
    process_images_async,
)
from .config import PipelineConfig


def main():
    """Entry point for the image-pipeline command."""
    import sys
    from .cli import main as cli_main

    sys.exit(cli_main())


__all__ = [
    "PixelBuffer",
    "TaskDistributor",
    "WorkerPool",
    "ImageWorker",
    "Job",
    "JobResult",
    "PipelineConfig",
    "process_images",
    "process_images_async",
]
