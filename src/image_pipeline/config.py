"""
Run configuration for the image pipeline.
"""

import argparse
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .core.distributor import DEFAULT_JOB_TIMEOUT
from .core.errors import ConfigError
from .core.image_encoder import DEFAULT_QUALITY
from .core.transform import BACKENDS, DEFAULT_BACKEND

DEFAULT_MAX_WIDTH = 800
DEFAULT_MAX_HEIGHT = 600
DEFAULT_WORKERS = 4


@dataclass
class PipelineConfig:
    source: Optional[Path] = None
    output: Optional[Path] = None
    max_width: int = DEFAULT_MAX_WIDTH
    max_height: int = DEFAULT_MAX_HEIGHT
    workers: int = DEFAULT_WORKERS
    job_timeout: float = DEFAULT_JOB_TIMEOUT
    quality: int = DEFAULT_QUALITY
    backend: str = DEFAULT_BACKEND
    recursive: bool = False
    start_method: Optional[str] = None

    def validate(self) -> "PipelineConfig":
        """Check value ranges; raises ConfigError on the first problem found."""
        if self.max_width <= 0 or self.max_height <= 0:
            raise ConfigError(f"Maximum size must be positive, got {self.max_width}x{self.max_height}")
        if self.workers < 1:
            raise ConfigError(f"Need at least one worker, got {self.workers}")
        if self.job_timeout <= 0:
            raise ConfigError(f"Job timeout must be positive, got {self.job_timeout}")
        if not 1 <= self.quality <= 95:
            raise ConfigError(f"JPEG quality must be between 1 and 95, got {self.quality}")
        if self.backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend '{self.backend}'. Available: {', '.join(sorted(BACKENDS))}"
            )
        return self

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "PipelineConfig":
        return cls(
            source=Path(args.source).resolve(),
            output=Path(args.output).resolve(),
            max_width=args.max_width,
            max_height=args.max_height,
            workers=args.workers,
            job_timeout=args.timeout,
            quality=args.quality,
            backend=args.backend,
            recursive=args.recursive,
        ).validate()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("source", "output"):
            if data[key] is not None:
                data[key] = str(data[key])
        return data
