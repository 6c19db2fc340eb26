"""Tests for the per-job image pipeline and the worker loop, run in-process."""

import multiprocessing
import os

import pytest
from PIL import Image

from image_pipeline.core import workers
from image_pipeline.core.jobs import JobRequest, JobResult, WorkerReady
from image_pipeline.core.workers import ImageWorker, run_job, worker_main


def make_request(source, dest, max_width=100, max_height=100, job_id="job-1"):
    return JobRequest(job_id, str(source), str(dest), max_width, max_height)


class TestImageWorker:
    """Tests for ImageWorker.process()."""

    def test_success(self, write_image, output_dir):
        source = write_image("wide.png", size=(200, 100))
        dest = output_dir / "wide.jpg"
        result = ImageWorker()(make_request(source, dest))

        assert result.success, result.message
        assert result.job_id == "job-1"
        assert (result.width, result.height, result.channels) == (100, 50, 1)
        assert result.input_size == os.path.getsize(source)
        assert result.output_size == os.path.getsize(dest)
        assert result.processing_time > 0
        with Image.open(dest) as img:
            assert img.format == "JPEG"
            assert img.size == (100, 50)
            assert img.mode == "L"

    def test_small_image_keeps_size(self, write_image, output_dir):
        source = write_image("small.png", size=(40, 30), mode="RGBA")
        result = ImageWorker(backend="pillow")(make_request(source, output_dir / "small.jpg"))
        assert result.success, result.message
        assert (result.width, result.height, result.channels) == (40, 30, 1)

    def test_missing_input(self, tmp_path, output_dir):
        result = ImageWorker()(make_request(tmp_path / "missing.png", output_dir / "missing.jpg"))
        assert not result.success
        assert result.error_kind == "IOError"
        assert "missing.png" in result.message

    def test_corrupt_input(self, tmp_path, output_dir):
        source = tmp_path / "broken.jpg"
        source.write_bytes(b"\xff\xd8 not really a jpeg")
        result = ImageWorker()(make_request(source, output_dir / "broken.jpg"))
        assert not result.success
        assert result.error_kind == "CodecError"
        assert not (output_dir / "broken.jpg").exists()

    def test_unwritable_output(self, write_image, tmp_path):
        source = write_image("a.png")
        dest = tmp_path / "missing-dir" / "a.jpg"
        result = ImageWorker()(make_request(source, dest))
        assert not result.success
        assert result.error_kind == "IOError"
        assert str(dest) in result.message

    def test_unexpected_error_is_worker_fault(self, write_image, output_dir, monkeypatch):
        worker = ImageWorker()

        def explode(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(worker.backend, "transform", explode)
        result = worker(make_request(write_image("a.png"), output_dir / "a.jpg"))
        assert result.error_kind == "WorkerFault"
        assert "boom" in result.message

    def test_processed_count(self, write_image, output_dir, tmp_path):
        worker = ImageWorker()
        worker(make_request(write_image("a.png"), output_dir / "a.jpg"))
        worker(make_request(tmp_path / "nope.png", output_dir / "nope.jpg"))
        assert worker.processed_count == 1


class TestRunJob:
    """Tests for run_job()."""

    def test_stamps_worker_id(self):
        request = make_request("a.png", "a.jpg")
        result = run_job(lambda req: JobResult(job_id=req.job_id, input_path=req.input_path,
                                               success=True), request, worker_id=4)
        assert result.worker_id == 4
        assert result.success

    def test_exception_becomes_worker_fault(self):
        def crash(request):
            raise KeyError("bad")

        result = run_job(crash, make_request("a.png", "a.jpg"), worker_id=1)
        assert not result.success
        assert result.error_kind == "WorkerFault"
        assert result.worker_id == 1
        assert "Worker crashed" in result.message


class TestWorkerMain:
    """Tests for the worker receive/process/reply loop over a pipe."""

    def test_ready_then_reply_until_stop(self, monkeypatch):
        monkeypatch.setattr(workers.signal, "signal", lambda *args: None)
        parent, child = multiprocessing.Pipe()
        request = make_request("a.png", "a.jpg", job_id="abc")
        parent.send(request)
        parent.send(None)

        worker_main(7, child, lambda req: JobResult(job_id=req.job_id, input_path=req.input_path,
                                                    success=True))

        ready = parent.recv()
        assert isinstance(ready, WorkerReady)
        assert ready.worker_id == 7
        assert ready.pid == os.getpid()
        reply = parent.recv()
        assert reply.job_id == "abc"
        assert reply.worker_id == 7
        assert child.closed
        parent.close()

    def test_stops_on_closed_pipe(self, monkeypatch):
        monkeypatch.setattr(workers.signal, "signal", lambda *args: None)
        parent, child = multiprocessing.Pipe()
        parent.close()
        worker_main(0, child, lambda req: pytest.fail("no job expected"))
        assert child.closed
