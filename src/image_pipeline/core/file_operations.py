#!/usr/bin/env python3
"""
file_operations.py: File I/O used by the pipeline.

Provides byte-level read/write with uniform error reporting, source directory
scanning for supported images, and output path planning. Used by both the
workers and the CLI.
"""

import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from .errors import ImageIOError, SourceDirectoryError
from .image_encoder import HEIF_SUPPORTED
from ..utils.log_utils import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.webp'}
if HEIF_SUPPORTED:
    IMAGE_EXTS |= {'.heic', '.heif'}

OUTPUT_SUFFIX = '.jpg'


def read_bytes(path: PathLike) -> bytes:
    """Read a whole file, raising ImageIOError on failure."""
    try:
        return Path(path).read_bytes()
    except OSError as err:
        raise ImageIOError(path, err.strerror or err) from err


def write_bytes(path: PathLike, data: bytes) -> None:
    """Write ``data`` to ``path``, raising ImageIOError on failure."""
    try:
        Path(path).write_bytes(data)
    except OSError as err:
        raise ImageIOError(path, err.strerror or err) from err


def iter_files(root: Path, recursive: bool = False) -> Iterator[Path]:
    """
    Yield file paths under `root` using os.scandir for speed.
    Subdirectories are only descended into when `recursive` is set.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    if entry.is_dir(follow_symlinks=False):
                        if recursive:
                            stack.append(Path(entry.path))
                    elif entry.is_file():
                        yield Path(entry.path)
        except PermissionError:
            logger.warning("Skipping unreadable directory %s", current)
            continue


def is_supported_image(path: Path) -> bool:
    # Skip macOS metadata files
    if path.name.startswith("._") or path.name == ".DS_Store":
        return False
    return path.suffix.lower() in IMAGE_EXTS


def get_image_files(source_dir: PathLike, recursive: bool = False) -> List[Path]:
    """
    Return supported image files under `source_dir`, sorted by path.

    Raises:
        SourceDirectoryError: If `source_dir` does not exist or is not a directory.
    """
    root = Path(source_dir)
    logger.info("Scanning directory: %s", root)
    if not root.exists():
        raise SourceDirectoryError(f"Source directory does not exist: {root}")
    if not root.is_dir():
        raise SourceDirectoryError(f"Source path is not a directory: {root}")

    files = sorted(p for p in iter_files(root, recursive) if is_supported_image(p))
    logger.info("Found %d supported image files", len(files))
    return files


def ensure_output_dir(output_dir: PathLike) -> Path:
    """Create the output directory (and parents) if missing."""
    out = Path(output_dir)
    if not out.exists():
        logger.info("Creating output directory: %s", out)
    try:
        out.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise ImageIOError(out, err.strerror or err) from err
    return out


def build_job_pairs(files: Iterable[Path], output_dir: PathLike,
                    source_root: Optional[PathLike] = None) -> List[Tuple[Path, Path]]:
    """
    Pair each input with its output path: ``output_dir/<relative dir>/<stem>.jpg``.

    When `source_root` is given, subdirectories below it are mirrored under
    `output_dir` (and created). Name collisions get a numeric suffix.
    """
    out_root = Path(output_dir)
    pairs: List[Tuple[Path, Path]] = []
    taken = set()
    for src in files:
        src = Path(src)
        dest_dir = out_root
        if source_root is not None:
            rel_dir = src.parent.relative_to(source_root)
            dest_dir = out_root / rel_dir
            dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / f"{src.stem}{OUTPUT_SUFFIX}"

        # photo.png and photo.jpg would both map to photo.jpg
        counter = 1
        while dest in taken:
            dest = dest_dir / f"{src.stem}_{counter}{OUTPUT_SUFFIX}"
            counter += 1
        taken.add(dest)
        pairs.append((src, dest))
    return pairs
