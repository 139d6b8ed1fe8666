"""Progress display."""

from .progress import ProgressMonitor, RichProgressMonitor, get_progress_monitor

__all__ = ["ProgressMonitor", "RichProgressMonitor", "get_progress_monitor"]
