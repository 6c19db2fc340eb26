"""
Job bookkeeping types shared by the distributor and the workers.

JobRequest, JobResult and WorkerReady are the only objects that cross the
process boundary, so they stay small picklable dataclasses.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union


class JobState(str, Enum):
    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT)


class SlotState(str, Enum):
    IDLE = "IDLE"
    BUSY = "BUSY"
    LOST = "LOST"


@dataclass
class JobRequest:
    """Job descriptor sent to a worker."""
    job_id: str
    input_path: str
    output_path: str
    max_width: int
    max_height: int


@dataclass
class JobResult:
    """Outcome of one job, successful or not."""
    job_id: str
    input_path: str
    output_path: Optional[str] = None
    success: bool = False
    input_size: int = 0
    output_size: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    channels: Optional[int] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    processing_time: float = 0.0
    worker_id: Optional[int] = None

    @classmethod
    def failure(cls, request: Union["JobRequest", "Job"], error_kind: str, message: str,
                **extra: Any) -> "JobResult":
        if isinstance(request, Job):
            request = request.to_request()
        return cls(
            job_id=request.job_id,
            input_path=request.input_path,
            output_path=request.output_path,
            success=False,
            error_kind=error_kind,
            message=message,
            **extra,
        )

    @property
    def compression_ratio(self) -> Optional[float]:
        """Percentage of bytes saved relative to the input file."""
        if not self.success or not self.input_size:
            return None
        return round((self.input_size - self.output_size) / self.input_size * 100, 1)

    def to_record(self) -> Dict[str, Any]:
        if self.success:
            return {
                "inputPath": self.input_path,
                "outputPath": self.output_path,
                "inputSize": self.input_size,
                "outputSize": self.output_size,
            }
        return {
            "inputPath": self.input_path,
            "errorKind": self.error_kind,
            "message": self.message,
        }


@dataclass
class WorkerReady:
    """First message a worker process sends once it can accept jobs."""
    worker_id: int
    pid: int


@dataclass
class Job:
    """One source image tracked from submission to a terminal state."""
    source: Path
    dest: Path
    max_width: int
    max_height: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.PENDING
    worker_id: Optional[int] = None
    dispatched_at: Optional[float] = None

    def __post_init__(self) -> None:
        self.source = Path(self.source)
        self.dest = Path(self.dest)
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError(f"Job bounds must be positive, got {self.max_width}x{self.max_height}")

    def to_request(self) -> JobRequest:
        return JobRequest(
            job_id=self.id,
            input_path=str(self.source),
            output_path=str(self.dest),
            max_width=self.max_width,
            max_height=self.max_height,
        )

    def mark_dispatched(self, worker_id: int) -> None:
        self.state = JobState.DISPATCHED
        self.worker_id = worker_id
        self.dispatched_at = time.monotonic()


@dataclass
class WorkerSlot:
    """Scheduling state of one pool member, as seen by the distributor."""
    id: int
    state: SlotState = SlotState.IDLE
    job_id: Optional[str] = None
    jobs_done: int = 0
    # Id of a timed-out job whose reply the worker still owes.
    awaiting_reply: Optional[str] = None

    @property
    def is_lost(self) -> bool:
        return self.state is SlotState.LOST
