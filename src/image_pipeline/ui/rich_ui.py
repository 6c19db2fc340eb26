#!/usr/bin/env python3
"""
rich_ui.py: Rich-based progress display for image-pipeline.

Shows a live progress bar while the distributor runs and a table of failed
images once it is done.
"""

from typing import Iterable, Optional

from rich import get_console
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn, TimeRemainingColumn
from rich.table import Table

from ..core.jobs import JobResult
from ..utils.log_utils import get_logger

logger = get_logger(__name__)


class RichProgressUI:
    """Live progress bar fed by TaskDistributor.on_job_finished."""

    def __init__(self, total: int, console: Optional[Console] = None):
        # Share the logging console so log lines print above the live bar.
        self.console = console or get_console()
        self.total = total
        self.succeeded = 0
        self.failed = 0
        self.progress = Progress(
            SpinnerColumn("dots8"),
            TextColumn("[bold yellow]Processing images..."),
            BarColumn(bar_width=None),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("({task.completed}/{task.total})"),
            TextColumn("[red]{task.fields[failed]} failed"),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console
        )
        self.task_id = None

    def __enter__(self) -> "RichProgressUI":
        self.progress.start()
        self.task_id = self.progress.add_task("images", total=self.total, failed=0)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.progress.stop()

    def on_job_finished(self, result: JobResult, finished: int, total: int) -> None:
        if result.success:
            self.succeeded += 1
        else:
            self.failed += 1
        if self.task_id is not None:
            self.progress.update(self.task_id, completed=finished, total=total, failed=self.failed)

    def print_failures(self, results: Iterable[JobResult]) -> None:
        """Print a table of failed images, if any."""
        failures = [r for r in results if not r.success]
        if not failures:
            return
        table = Table(title=f"{len(failures)} image(s) failed", title_style="bold red")
        table.add_column("Input", overflow="fold")
        table.add_column("Error", style="red", no_wrap=True)
        table.add_column("Message", overflow="fold")
        for result in failures:
            table.add_row(result.input_path, result.error_kind or "?", result.message or "")
        self.console.print(table)
