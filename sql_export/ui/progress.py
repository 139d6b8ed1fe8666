"""
Progress monitoring and user interface.
Single responsibility: provide user feedback during exports.
"""

import sys
import time
from typing import Any, Dict, Iterable, Optional

from rich import box
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table
from rich.text import Text

from ..utils.logger import get_logger


logger = get_logger()


class ProgressMonitor:
    """
    Simple progress monitoring for console output.

    Counters may run past their total; the estimate behind a total is
    advisory, so the display just reports more than 100%.
    """

    def __init__(self, verbose: bool = True, stream=None):
        """
        Initialize progress monitor.

        Args:
            verbose: Whether to show detailed progress
            stream: Output stream (defaults to stdout)
        """
        self.verbose = verbose
        self.stream = stream or sys.stdout
        self.tasks: Dict[str, Dict[str, Any]] = {}
        self.update_interval = 0.1

    def add_task(self, name: str, total: Optional[int] = None,
                 description: Optional[str] = None) -> str:
        """
        Start a new task.

        Args:
            name: Task identifier
            total: Total items to process (None for indeterminate)
            description: Task description
        """
        self.tasks[name] = {
            "description": description or name,
            "total": total,
            "completed": 0,
            "start_time": time.time(),
            "last_draw": 0.0,
        }

        if self.verbose:
            print(f"\n[START] {description or name}", file=self.stream)
            if total:
                print(f"  Estimated items: {total:,}", file=self.stream)
        return name

    def update_task(self, name: str, advance: int = 1,
                    completed: Optional[int] = None):
        """
        Update progress.

        Args:
            name: Task identifier
            advance: Steps to advance
            completed: Set completed amount directly
        """
        task = self.tasks.get(name)
        if task is None:
            return

        if completed is not None:
            task["completed"] = completed
        else:
            task["completed"] += advance

        now = time.time()
        if not self.verbose or now - task["last_draw"] < self.update_interval:
            return
        task["last_draw"] = now
        print(f"\r{self._status(task, now)}", end="", file=self.stream, flush=True)

    def _status(self, task: Dict[str, Any], now: float) -> str:
        elapsed = now - task["start_time"]
        current = task["completed"]
        total = task["total"]

        if total:
            percent = (current / total) * 100
            remaining_items = max(total - current, 0)
            rate = current / elapsed if elapsed > 0 else 0
            eta = remaining_items / rate if rate > 0 else 0

            status = f"  [{percent:5.1f}%] {current:,}/{total:,}"
            if eta > 0:
                status += f" - ETA: {self._format_time(eta)}"
        else:
            status = f"  Processing: {current:,} items"

        return status + f" - Elapsed: {self._format_time(elapsed)}"

    def complete_task(self, name: str, message: Optional[str] = None):
        """
        Mark a task as complete.

        Args:
            name: Task identifier
            message: Optional completion message
        """
        task = self.tasks.pop(name, None)
        if task is None or not self.verbose:
            return

        elapsed = time.time() - task["start_time"]
        print(file=self.stream)

        status = f"[DONE] {task['description']}"
        status += f" - {task['completed']:,} items"
        status += f" - Time: {self._format_time(elapsed)}"
        if elapsed > 0:
            status += f" - Rate: {task['completed'] / elapsed:,.0f} items/sec"
        if message:
            status += f" - {message}"

        print(status, file=self.stream)

    def fail_task(self, name: str, message: Optional[str] = None):
        """
        Mark a task as failed, keeping the count it reached.

        Args:
            name: Task identifier
            message: Optional failure message
        """
        task = self.tasks.pop(name, None)
        if task is None or not self.verbose:
            return

        print(file=self.stream)
        status = f"[FAILED] {task['description']}"
        status += f" - {task['completed']:,} items"
        if message:
            status += f" - {message}"
        print(status, file=self.stream)

    def stop(self):
        """Drop any unfinished tasks."""
        self.tasks = {}

    def log_error(self, message: str):
        print(f"\n[ERROR] {message}", file=sys.stderr)

    def log_warning(self, message: str):
        if self.verbose:
            print(f"\n[WARNING] {message}", file=sys.stderr)

    def show_export_results(self, outcomes: Iterable[Any]):
        """
        Print one line per table outcome.

        Args:
            outcomes: ExportSuccess / ExportFailure instances
        """
        for outcome in outcomes:
            if outcome.ok:
                print(f"  {outcome.table}: {outcome.rows_written:,} rows -> "
                      f"{outcome.output_path}", file=self.stream)
            else:
                print(f"  {outcome.table}: FAILED ({outcome.cause})",
                      file=self.stream)

    def _format_time(self, seconds: float) -> str:
        """
        Format time duration.

        Args:
            seconds: Time in seconds

        Returns:
            Formatted time string
        """
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = seconds / 60
            return f"{minutes:.1f}m"
        else:
            hours = seconds / 3600
            return f"{hours:.1f}h"


class RichProgressMonitor:
    """
    Rich progress bar, redrawn on its own refresh timer.
    """

    def __init__(self, console: Optional[Console] = None):
        """Initialize Rich progress monitor."""
        self.console = console or Console(stderr=True)
        self.progress: Optional[Progress] = None
        self.tasks: Dict[str, Any] = {}

    def start(self):
        """Start progress monitoring."""
        self.progress = Progress(
            SpinnerColumn(style="green"),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(complete_style="cyan", finished_style="green"),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            refresh_per_second=10
        )
        self.progress.start()

    def add_task(self, name: str, total: Optional[int] = None,
                 description: Optional[str] = None) -> Any:
        """
        Add a new task to track.

        Args:
            name: Task identifier
            total: Total steps (None for indeterminate)
            description: Task description

        Returns:
            Task ID
        """
        if not self.progress:
            self.start()

        task_id = self.progress.add_task(description or name, total=total)
        self.tasks[name] = task_id

        logger.debug("rich_progress.task.added", name=name, total=total)
        return task_id

    def update_task(self, name: str, advance: int = 1,
                    completed: Optional[int] = None):
        """
        Update task progress.

        Args:
            name: Task name
            advance: Steps to advance
            completed: Set completed amount directly
        """
        if name not in self.tasks:
            return

        if completed is not None:
            self.progress.update(self.tasks[name], completed=completed)
        else:
            self.progress.advance(self.tasks[name], advance)

    def complete_task(self, name: str, message: Optional[str] = None):
        """
        Mark task as complete.

        Args:
            name: Task name
            message: Completion message
        """
        if name not in self.tasks:
            return

        task_id = self.tasks.pop(name)
        task_meta = next(t for t in self.progress.tasks if t.id == task_id)

        # Stretch the bar to whatever was actually streamed
        total = task_meta.total
        if total is None or task_meta.completed > total:
            total = task_meta.completed
        self.progress.update(task_id, total=total, completed=total)

        if message:
            self.progress.update(task_id, description=f"✓ {message}")
        self.progress.stop_task(task_id)

    def fail_task(self, name: str, message: Optional[str] = None):
        """
        Stop a task where it is, without filling the bar.

        Args:
            name: Task name
            message: Failure message
        """
        if name not in self.tasks:
            return

        task_id = self.tasks.pop(name)
        if message:
            self.progress.update(task_id, description=f"✗ {message}")
        self.progress.stop_task(task_id)

    def stop(self):
        """Stop progress monitoring."""
        if self.progress:
            self.progress.stop()
            self.progress = None
            self.tasks = {}

    def log_error(self, message: str):
        self.console.print(Text(f"✗ {message}", style="bold red"))

    def log_warning(self, message: str):
        self.console.print(f"⚠ {message}", style="yellow")

    def show_export_results(self, outcomes: Iterable[Any]):
        """
        Display export results in a formatted table.

        Args:
            outcomes: ExportSuccess / ExportFailure instances
        """
        table = Table(title="Export Results", box=box.ROUNDED)

        table.add_column("Table", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Rows", style="magenta", justify="right")
        table.add_column("Output / Cause")

        for outcome in outcomes:
            if outcome.ok:
                status = Text("✓ Exported", style="green")
                if outcome.cancelled:
                    status = Text("⚠ Partial", style="yellow")
                table.add_row(outcome.table, status,
                              f"{outcome.rows_written:,}",
                              str(outcome.output_path))
            else:
                table.add_row(outcome.table,
                              Text("✗ Failed", style="red"),
                              "-",
                              Text(str(outcome.cause), style="dim"))

        self.console.print()
        self.console.print(table)


def get_progress_monitor(use_rich: bool = True, verbose: bool = True) -> Any:
    """
    Get appropriate progress monitor.

    Args:
        use_rich: Whether to use the Rich progress bar
        verbose: Whether the plain monitor prints progress

    Returns:
        Progress monitor instance
    """
    if use_rich:
        return RichProgressMonitor()
    return ProgressMonitor(verbose=verbose)
