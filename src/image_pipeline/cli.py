#!/usr/bin/env python3
"""
Command-line interface for image-pipeline.

Scans a source directory for images, resizes each to fit the maximum size,
converts it to grayscale and writes a JPEG per image to the output
directory, spreading the work over a pool of worker processes.
"""

import argparse
import contextlib
import logging
import sys
import time
from typing import List, Optional

from .config import (
    PipelineConfig,
    DEFAULT_MAX_HEIGHT,
    DEFAULT_MAX_WIDTH,
    DEFAULT_WORKERS,
)
from .core.distributor import DEFAULT_JOB_TIMEOUT, TaskDistributor, make_jobs
from .core.errors import PipelineError
from .core.file_operations import build_job_pairs, ensure_output_dir, get_image_files
from .core.image_encoder import DEFAULT_QUALITY
from .core.jobs import JobResult
from .core.transform import BACKENDS, DEFAULT_BACKEND
from .core.workers import ImageWorker, WorkerPool
from .ui.rich_ui import RichProgressUI
from .utils.log_utils import LOG_LEVELS, configure_logging, get_logger, parse_log_level

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resize and grayscale a directory of images using parallel worker processes."
    )
    parser.add_argument('-s', '--source', required=True,
                        help='Source directory containing images')
    parser.add_argument('-o', '--output', required=True,
                        help='Output directory for processed images')
    parser.add_argument('-w', '--workers', type=int, default=DEFAULT_WORKERS,
                        help=f'Number of worker processes (default: {DEFAULT_WORKERS})')
    parser.add_argument('--max-width', type=int, default=DEFAULT_MAX_WIDTH,
                        help=f'Maximum output width (default: {DEFAULT_MAX_WIDTH})')
    parser.add_argument('--max-height', type=int, default=DEFAULT_MAX_HEIGHT,
                        help=f'Maximum output height (default: {DEFAULT_MAX_HEIGHT})')
    parser.add_argument('--timeout', type=float, default=DEFAULT_JOB_TIMEOUT,
                        help=f'Seconds a worker may spend on one image (default: {DEFAULT_JOB_TIMEOUT:g})')
    parser.add_argument('--quality', type=int, default=DEFAULT_QUALITY,
                        help=f'JPEG quality of the output (default: {DEFAULT_QUALITY})')
    parser.add_argument('--backend', choices=sorted(BACKENDS), default=DEFAULT_BACKEND,
                        help=f'Resize/grayscale implementation (default: {DEFAULT_BACKEND})')
    parser.add_argument('--recursive', action='store_true',
                        help='Also process images in subdirectories, mirroring them in the output')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress bar')
    parser.add_argument('--log-level', choices=LOG_LEVELS, default='info',
                        help="Set logging level (default: info; 'none' disables logging)")
    return parser.parse_args(argv)


def log_summary(results: List[JobResult], total: int, duration: float) -> None:
    succeeded = sum(1 for r in results if r.success)
    rate = succeeded / duration if duration > 0 else 0.0
    logger.info("Processing completed!")
    logger.info("Processed: %d/%d images", succeeded, total)
    logger.info("Duration: %.2fs", duration)
    logger.info("Rate: %.2f images/second", rate)
    saved_in = sum(r.input_size for r in results if r.success)
    saved_out = sum(r.output_size for r in results if r.success)
    if saved_in:
        logger.info("Size: %d -> %d bytes (%.1f%% saved)",
                    saved_in, saved_out, (saved_in - saved_out) / saved_in * 100)


def run(config: PipelineConfig, show_progress: bool = True,
        log_level: Optional[int] = logging.INFO) -> int:
    """Run the whole pipeline for ``config``; returns the process exit status."""
    logger.info("Image Processing Pipeline Starting")
    logger.info("Source: %s", config.source)
    logger.info("Output: %s", config.output)
    logger.info("Workers: %d", config.workers)

    files = get_image_files(config.source, config.recursive)
    ensure_output_dir(config.output)
    if not files:
        logger.info("No supported image files found")
        return 0

    source_root = config.source if config.recursive else None
    pairs = build_job_pairs(files, config.output, source_root)
    jobs = make_jobs(pairs, config.max_width, config.max_height)

    processor = ImageWorker(quality=config.quality, backend=config.backend)
    ui = RichProgressUI(len(jobs)) if show_progress else None
    start_time = time.monotonic()
    with WorkerPool(processor, size=config.workers, log_level=log_level,
                    start_method=config.start_method) as pool:
        distributor = TaskDistributor(pool, job_timeout=config.job_timeout)
        with ui if ui is not None else contextlib.nullcontext():
            if ui is not None:
                distributor.on_job_finished = ui.on_job_finished
            results = distributor.submit(jobs)
    duration = time.monotonic() - start_time

    log_summary(results, len(jobs), duration)
    if ui is not None:
        ui.print_failures(results)
    return 0 if all(r.success for r in results) else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = parse_log_level(args.log_level)
    if level is not None:
        configure_logging(level)

    try:
        config = PipelineConfig.from_args(args)
        return run(config, show_progress=not args.no_progress, log_level=level)
    except PipelineError as err:
        logger.error("Pipeline error: %s", err)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
