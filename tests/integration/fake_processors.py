"""
Picklable job processors for tests that start real worker processes.

They live in their own module so spawn/forkserver workers can import them.
"""

import os
import time
from pathlib import Path

from image_pipeline.core.jobs import JobResult


def _ok(request):
    return JobResult(
        job_id=request.job_id,
        input_path=request.input_path,
        output_path=request.output_path,
        success=True,
    )


class EchoProcessor:
    """Succeeds immediately without touching the filesystem."""

    def __call__(self, request):
        return _ok(request)


class SleepyProcessor:
    """Sleeps per input file name, then succeeds."""

    def __init__(self, delays=None, default=0.0):
        self.delays = delays or {}
        self.default = default

    def __call__(self, request):
        time.sleep(self.delays.get(Path(request.input_path).name, self.default))
        return _ok(request)


class CrashingProcessor:
    """Kills its worker process outright on the named inputs."""

    def __init__(self, crash_on=()):
        self.crash_on = set(crash_on)

    def __call__(self, request):
        if Path(request.input_path).name in self.crash_on:
            os._exit(3)
        return _ok(request)


class RaisingProcessor:
    def __call__(self, request):
        raise RuntimeError(f"cannot handle {request.input_path}")


class BrokenInChildProcessor(EchoProcessor):
    """Pickles fine but cannot be unpickled, so a spawned worker dies on startup."""

    def __init__(self):
        # Non-empty state, otherwise pickle never calls __setstate__.
        self.armed = True

    def __setstate__(self, state):
        raise RuntimeError("refusing to unpickle")
