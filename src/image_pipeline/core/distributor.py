"""
distributor.py: Hands queued jobs to idle workers and collects their results.

One coordinator coroutine per worker slot runs on a single event loop and
greedily pulls the next job from the shared pending queue whenever its slot
is idle. The queue and all counters are only touched from that loop, so no
locks are involved. Each job gets a deadline measured from dispatch; a reply
that arrives after its job has timed out is discarded. A slot whose job timed
out takes no new work until that late reply arrives, and is retired if it
does not come within a second timeout.
"""

import asyncio
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import WorkerFault, WorkerTimeout
from .image_encoder import DEFAULT_QUALITY
from .jobs import Job, JobResult, JobState, SlotState, WorkerSlot
from .transform import DEFAULT_BACKEND, TransformBackend
from .workers import ImageWorker, WorkerPool
from ..utils.log_utils import get_logger

logger = get_logger(__name__)

DEFAULT_JOB_TIMEOUT = 30.0


class TaskDistributor:
    """
    Pull-based load balancer over a started WorkerPool.

    Callbacks can be attached to follow progress:
        on_job_dispatched(job, slot)
        on_job_finished(result, finished_count, total_count)
    """

    def __init__(
        self,
        pool: WorkerPool,
        job_timeout: float = DEFAULT_JOB_TIMEOUT,
        poll_interval: float = 0.25,
    ) -> None:
        if job_timeout <= 0:
            raise ValueError(f"job_timeout must be positive, got {job_timeout}")
        self.pool = pool
        self.job_timeout = job_timeout
        self.poll_interval = poll_interval

        self.pending: Deque[Job] = deque()
        self.jobs: Dict[str, Job] = {}
        self.results: Dict[str, JobResult] = {}
        self.completion_order: List[JobResult] = []

        self.total_count = 0
        self.active_count = 0
        self.finished_count = 0
        self.discarded_replies = 0
        self.start_time: Optional[float] = None
        self._executor: Optional[ThreadPoolExecutor] = None

        self.on_job_dispatched: Optional[Callable[[Job, WorkerSlot], None]] = None
        self.on_job_finished: Optional[Callable[[JobResult, int, int], None]] = None

    def submit(self, jobs: Sequence[Job]) -> List[JobResult]:
        """Run ``jobs`` to completion and return their results (blocking)."""
        return asyncio.run(self.run(jobs))

    async def run(self, jobs: Sequence[Job]) -> List[JobResult]:
        """
        Process every job until it reaches a terminal state.

        Returns:
            One JobResult per job, in completion order.
        """
        if not self.pool.started:
            raise RuntimeError("Worker pool is not started")
        jobs = list(jobs)
        if len({job.id for job in jobs}) != len(jobs):
            raise ValueError("Job ids must be unique")

        self.pending.extend(jobs)
        for job in jobs:
            self.jobs[job.id] = job
        self.total_count += len(jobs)
        self.start_time = time.monotonic()

        live_slots = [slot for slot in self.pool.slots if not slot.is_lost]
        logger.info("Processing %d images with %d workers...", len(jobs), len(live_slots))

        if live_slots:
            # One poller thread per slot so a slow pipe never delays another slot's deadline.
            with ThreadPoolExecutor(max_workers=len(live_slots),
                                    thread_name_prefix="slot-poll") as executor:
                self._executor = executor
                try:
                    async with asyncio.TaskGroup() as tg:
                        for slot in live_slots:
                            tg.create_task(self._drain(slot))
                finally:
                    self._executor = None

        # Every worker died before the queue emptied.
        while self.pending:
            job = self.pending.popleft()
            self._finish(job, JobResult.failure(job, WorkerFault.kind, "No live workers remain"))

        wanted = {job.id for job in jobs}
        return [result for result in self.completion_order if result.job_id in wanted]

    async def _drain(self, slot: WorkerSlot) -> None:
        """Keep one slot busy until the queue is empty or its worker is lost."""
        while self.pending and not slot.is_lost:
            if slot.awaiting_reply is not None:
                await self._collect_late_reply(slot)
                continue
            job = self.pending.popleft()
            await self._dispatch(slot, job)

    async def _receive(self, slot: WorkerSlot, deadline: float) -> Any:
        """
        Wait for the next message from the slot's worker.

        Returns None once ``deadline`` (event loop time) passes. Raises
        WorkerFault if the worker process has exited or its pipe is closed.
        """
        loop = asyncio.get_running_loop()
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            wait = min(remaining, self.poll_interval)
            has_message = await loop.run_in_executor(self._executor, self.pool.poll, slot.id, wait)
            if not has_message:
                if not self.pool.is_alive(slot.id):
                    raise WorkerFault("process exited", slot.id)
                continue
            try:
                return self.pool.recv(slot.id)
            except (EOFError, OSError) as err:
                raise WorkerFault(f"connection closed ({type(err).__name__})", slot.id) from err

    async def _dispatch(self, slot: WorkerSlot, job: Job) -> None:
        loop = asyncio.get_running_loop()
        job.mark_dispatched(slot.id)
        slot.state = SlotState.BUSY
        slot.job_id = job.id
        self.active_count += 1
        self._notify(self.on_job_dispatched, job, slot)
        logger.debug("Dispatching %s to worker %d", job.source.name, slot.id)

        try:
            self.pool.send(slot.id, job.to_request())
        except (OSError, ValueError) as err:
            self._lose_slot(slot, f"cannot reach worker: {err}", job)
            return

        deadline = loop.time() + self.job_timeout
        while True:
            try:
                reply = await self._receive(slot, deadline)
            except WorkerFault as err:
                self._lose_slot(slot, str(err), job)
                return

            if reply is None:
                message = f"Worker {slot.id} timeout processing {job.source}"
                logger.warning("%s", message)
                slot.awaiting_reply = job.id
                self._finish(job, JobResult.failure(
                    job, WorkerTimeout.kind, message,
                    worker_id=slot.id, processing_time=self.job_timeout,
                ), state=JobState.TIMED_OUT)
                break

            if not isinstance(reply, JobResult) or reply.job_id != job.id:
                self._discard(slot, reply)
                continue

            self._finish(job, reply)
            break

        slot.state = SlotState.IDLE
        slot.job_id = None

    async def _collect_late_reply(self, slot: WorkerSlot) -> None:
        """
        Hold an idle slot back until its worker answers the job that timed out.

        The worker handles requests one at a time, so anything sent before
        that reply would wait behind the stuck job. A worker that stays silent
        for another full timeout is treated as lost. Gives up early once the
        queue is empty, since the slot has nothing left to run.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.job_timeout
        while slot.awaiting_reply is not None and self.pending:
            if loop.time() >= deadline:
                self._lose_slot(slot, f"no reply for {2 * self.job_timeout:g}s")
                return
            try:
                reply = await self._receive(slot, min(deadline, loop.time() + self.poll_interval))
            except WorkerFault as err:
                self._lose_slot(slot, str(err))
                return
            if reply is None:
                continue
            if getattr(reply, "job_id", None) == slot.awaiting_reply:
                slot.awaiting_reply = None
            self._discard(slot, reply)

    def _discard(self, slot: WorkerSlot, reply: object) -> None:
        """Drop a reply for a job that is no longer awaited (e.g. it already timed out)."""
        self.discarded_replies += 1
        job_id = getattr(reply, "job_id", None)
        job = self.jobs.get(job_id) if job_id else None
        if job is not None:
            logger.info("Discarding late reply from worker %d for %s (%s)",
                        slot.id, job.source.name, job.state.value)
        else:
            logger.warning("Discarding unexpected message from worker %d: %r", slot.id, reply)

    def _lose_slot(self, slot: WorkerSlot, reason: str, job: Optional[Job] = None) -> None:
        """Retire ``slot`` for good, failing the job it was running (if any)."""
        slot.state = SlotState.LOST
        slot.job_id = None
        slot.awaiting_reply = None
        if job is None:
            logger.error("Worker %d lost: %s", slot.id, reason)
            return
        logger.error("Worker %d lost while processing %s: %s", slot.id, job.source, reason)
        self._finish(job, JobResult.failure(
            job, WorkerFault.kind, f"Worker {slot.id} died: {reason}", worker_id=slot.id
        ))

    def _notify(self, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Progress callback %r failed", callback)

    def _finish(self, job: Job, result: JobResult, state: Optional[JobState] = None) -> None:
        """Move ``job`` to its terminal state and record ``result`` (first call wins)."""
        if job.state.is_terminal:
            logger.debug("Ignoring second outcome for %s", job.id)
            return
        if state is None:
            state = JobState.COMPLETED if result.success else JobState.FAILED
        was_dispatched = job.state is JobState.DISPATCHED
        job.state = state

        if was_dispatched:
            self.active_count -= 1
            slot = self.pool.slots[job.worker_id]
            slot.jobs_done += 1
        self.finished_count += 1
        self.results[job.id] = result
        self.completion_order.append(result)

        if result.success:
            logger.debug("Completed %s -> %s", job.source.name, result.output_path)
        else:
            logger.error("Error processing %s: [%s] %s", job.source, result.error_kind, result.message)
        self._log_progress()
        self._notify(self.on_job_finished, result, self.finished_count, self.total_count)

    def _log_progress(self) -> None:
        elapsed = max(time.monotonic() - (self.start_time or time.monotonic()), 1e-6)
        rate = self.finished_count / elapsed
        remaining = self.total_count - self.finished_count
        eta = remaining / rate if rate else 0.0
        percent = self.finished_count / self.total_count * 100 if self.total_count else 100.0
        logger.info(
            "Progress: %d/%d (%.1f%%) | Rate: %.1f img/s | Active: %d | ETA: %.0fs",
            self.finished_count, self.total_count, percent, rate, self.active_count, eta,
        )

    def count(self, state: JobState) -> int:
        return sum(1 for job in self.jobs.values() if job.state is state)


def make_jobs(pairs: Iterable[Tuple[Union[str, Path], Union[str, Path]]],
              max_width: int, max_height: int) -> List[Job]:
    return [Job(source=src, dest=dest, max_width=max_width, max_height=max_height)
            for src, dest in pairs]


async def process_images_async(
    pairs: Iterable[Tuple[Union[str, Path], Union[str, Path]]],
    max_width: int = 800,
    max_height: int = 600,
    worker_count: int = 4,
    job_timeout: float = DEFAULT_JOB_TIMEOUT,
    quality: int = DEFAULT_QUALITY,
    backend: Union[str, TransformBackend] = DEFAULT_BACKEND,
    log_level: Optional[int] = None,
    start_method: Optional[str] = None,
    on_job_finished: Optional[Callable[[JobResult, int, int], None]] = None,
) -> List[JobResult]:
    """
    Convenience function to process (input, output) pairs on a fresh pool.

    The pool is always shut down, including when startup fails.

    Returns:
        One JobResult per pair, in completion order.
    """
    jobs = make_jobs(pairs, max_width, max_height)
    processor = ImageWorker(quality=quality, backend=backend)
    with WorkerPool(processor, size=worker_count, log_level=log_level,
                    start_method=start_method) as pool:
        distributor = TaskDistributor(pool, job_timeout=job_timeout)
        distributor.on_job_finished = on_job_finished
        return await distributor.run(jobs)


def process_images(*args, **kwargs) -> List[JobResult]:
    """Blocking wrapper around process_images_async."""
    return asyncio.run(process_images_async(*args, **kwargs))
