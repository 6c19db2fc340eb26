import multiprocessing
import os
import signal
import time
from multiprocessing.connection import Connection
from typing import Any, Callable, List, Optional, Union

from . import wire_codec
from .errors import PipelineError, WorkerFault, error_kind
from .file_operations import read_bytes, write_bytes
from .image_encoder import DEFAULT_QUALITY, decode_to_raw, encode_from_raw
from .jobs import JobRequest, JobResult, WorkerReady, WorkerSlot
from .transform import TransformBackend, get_backend, process_image
from ..utils.log_utils import configure_logging, get_logger

logger = get_logger(__name__)

Processor = Callable[[JobRequest], JobResult]


class ImageWorker:
    """
    Per-job image pipeline run inside a worker process.

    read -> decode to raw pixels -> wire encode -> transform (fit + grayscale)
    -> wire decode -> JPEG encode -> write. Any failure is returned as a
    failed JobResult instead of being raised.
    """

    def __init__(self, quality: int = DEFAULT_QUALITY,
                 backend: Union[str, TransformBackend, None] = None) -> None:
        self.quality = quality
        self.backend = get_backend(backend)
        self.processed_count = 0

    def __call__(self, request: JobRequest) -> JobResult:
        return self.process(request)

    def process(self, request: JobRequest) -> JobResult:
        start_time = time.monotonic()
        try:
            input_bytes = read_bytes(request.input_path)
            source = decode_to_raw(input_bytes)
            logger.debug("Decoded %s: %r", request.input_path, source)

            raw_out = process_image(
                wire_codec.encode(source), request.max_width, request.max_height, self.backend
            )
            processed = wire_codec.decode(raw_out)

            output_bytes = encode_from_raw(processed, self.quality)
            write_bytes(request.output_path, output_bytes)
        except PipelineError as err:
            logger.error("Failed to process %s: %s", request.input_path, err)
            return JobResult.failure(
                request, error_kind(err), str(err), processing_time=time.monotonic() - start_time
            )
        except Exception as err:
            logger.exception("Unexpected error processing %s", request.input_path)
            return JobResult.failure(
                request, error_kind(err), f"{type(err).__name__}: {err}",
                processing_time=time.monotonic() - start_time
            )

        self.processed_count += 1
        processing_time = time.monotonic() - start_time
        logger.debug("Completed %s in %.2fs", request.input_path, processing_time)
        return JobResult(
            job_id=request.job_id,
            input_path=request.input_path,
            output_path=request.output_path,
            success=True,
            input_size=len(input_bytes),
            output_size=len(output_bytes),
            width=processed.width,
            height=processed.height,
            channels=processed.channels,
            processing_time=processing_time,
        )


def run_job(processor: Processor, request: JobRequest, worker_id: int) -> JobResult:
    """Run ``processor`` on ``request``; an exception becomes a WorkerFault result."""
    start_time = time.monotonic()
    try:
        result = processor(request)
    except Exception as err:
        logger.exception("Worker %d crashed on %s", worker_id, request.input_path)
        result = JobResult.failure(request, WorkerFault.kind, f"Worker crashed: {err}")
    result.worker_id = worker_id
    if not result.processing_time:
        result.processing_time = time.monotonic() - start_time
    return result


def worker_main(worker_id: int, conn: Connection, processor: Processor,
                log_level: Optional[int] = None) -> None:
    """
    Receive/process/reply loop of a worker process.

    Announces itself with WorkerReady, then answers every JobRequest with a
    JobResult until it receives None or the pipe closes.
    """
    # Ctrl-C is handled by the parent, which shuts the pool down.
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    if log_level is not None:
        configure_logging(log_level)

    processed = 0
    try:
        conn.send(WorkerReady(worker_id=worker_id, pid=os.getpid()))
        while True:
            try:
                request = conn.recv()
            except EOFError:
                break
            if request is None:
                break
            conn.send(run_job(processor, request, worker_id))
            processed += 1
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Worker %d lost its connection to the distributor", worker_id)
    finally:
        logger.debug("Worker %d shutting down after processing %d images", worker_id, processed)
        conn.close()


class WorkerPool:
    """
    Fixed set of worker processes, each connected by its own duplex pipe.

    Use as a context manager so processes are released on every exit path:

        with WorkerPool(ImageWorker(), size=4) as pool:
            results = TaskDistributor(pool).submit(jobs)
    """

    def __init__(
        self,
        processor: Processor,
        size: Optional[int] = None,
        log_level: Optional[int] = None,
        start_method: Optional[str] = None,
        start_timeout: float = 30.0,
    ) -> None:
        self.processor = processor
        self.size = size
        self.log_level = log_level
        self.start_timeout = start_timeout
        self._ctx = multiprocessing.get_context(start_method)
        self._processes: List[Any] = []
        self._conns: List[Connection] = []
        self.slots: List[WorkerSlot] = []

    @property
    def started(self) -> bool:
        return bool(self.slots)

    def start(self, size: Optional[int] = None) -> "WorkerPool":
        """Start ``size`` workers and wait until each reports ready.

        If any worker fails to come up, every process started so far is torn
        down before WorkerFault is raised.
        """
        size = size if size is not None else self.size
        if size is None or size < 1:
            raise ValueError(f"Worker count must be at least 1, got {size}")
        if self._processes:
            raise RuntimeError("Worker pool already started")

        logger.info("Initializing %d worker processes...", size)
        try:
            for worker_id in range(size):
                parent_conn, child_conn = self._ctx.Pipe()
                self._conns.append(parent_conn)
                process = self._ctx.Process(
                    target=worker_main,
                    args=(worker_id, child_conn, self.processor, self.log_level),
                    name=f"image-worker-{worker_id}",
                    daemon=True,
                )
                try:
                    process.start()
                finally:
                    child_conn.close()
                self._processes.append(process)

            deadline = time.monotonic() + self.start_timeout
            for worker_id in range(size):
                self._await_ready(worker_id, deadline)
        except BaseException:
            self.shutdown(grace=0)
            raise

        self.size = size
        self.slots = [WorkerSlot(id=worker_id) for worker_id in range(size)]
        logger.info("Worker processes initialized successfully")
        return self

    def _await_ready(self, worker_id: int, deadline: float) -> None:
        conn = self._conns[worker_id]
        if not conn.poll(max(0.0, deadline - time.monotonic())):
            raise WorkerFault(
                f"Worker {worker_id} did not start within {self.start_timeout}s", worker_id
            )
        try:
            message = conn.recv()
        except (EOFError, OSError) as err:
            raise WorkerFault(f"Worker {worker_id} exited during startup", worker_id) from err
        if not isinstance(message, WorkerReady):
            raise WorkerFault(f"Worker {worker_id} sent {message!r} instead of a ready message", worker_id)
        logger.debug("Worker %d ready (pid %d)", worker_id, message.pid)

    def send(self, worker_id: int, request: JobRequest) -> None:
        self._conns[worker_id].send(request)

    def poll(self, worker_id: int, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for a message (or EOF) from a worker."""
        return self._conns[worker_id].poll(timeout)

    def recv(self, worker_id: int) -> Any:
        return self._conns[worker_id].recv()

    def is_alive(self, worker_id: int) -> bool:
        return self._processes[worker_id].is_alive()

    def shutdown(self, grace: float = 2.0) -> None:
        """Stop all workers: ask politely, wait ``grace`` seconds, then terminate."""
        if not self._processes and not self._conns:
            return
        logger.info("Cleaning up worker processes...")
        for worker_id, conn in enumerate(self._conns):
            try:
                conn.send(None)
            except (OSError, ValueError):
                logger.debug("Worker %d already gone", worker_id)

        deadline = time.monotonic() + grace
        for process in self._processes:
            process.join(max(0.0, deadline - time.monotonic()))
        for process in self._processes:
            if process.is_alive():
                logger.warning("Terminating %s (still busy)", process.name)
                process.terminate()
                process.join(1.0)
                if process.is_alive():
                    process.kill()
                    process.join()

        for conn in self._conns:
            conn.close()
        self._processes = []
        self._conns = []
        self.slots = []
        logger.info("Cleanup completed")

    def __enter__(self) -> "WorkerPool":
        if not self.started and self.size is not None:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def __len__(self) -> int:
        return len(self.slots)
