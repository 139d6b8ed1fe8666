"""
Performance metrics collection.
Single responsibility: track and report export throughput and memory.
"""

import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import psutil

from .logger import get_logger


logger = get_logger()


@dataclass
class OperationMetrics:
    """Metrics for a single table export."""

    name: str
    start_time: float
    end_time: Optional[float] = None
    duration_seconds: Optional[float] = None
    rows_processed: int = 0
    memory_mb_start: float = 0
    memory_mb_end: float = 0
    success: bool = True
    error: Optional[str] = None

    @property
    def rows_per_second(self) -> float:
        if not self.duration_seconds:
            return 0.0
        return self.rows_processed / self.duration_seconds


@dataclass
class RunMetrics:
    """Overall run metrics."""

    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    total_duration_seconds: float = 0
    operations: List[OperationMetrics] = field(default_factory=list)
    memory_mb_peak: float = 0
    total_rows_processed: int = 0
    tables_exported: int = 0
    tables_failed: int = 0


class MetricsCollector:
    """
    Collect and track export metrics.
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.run_metrics = RunMetrics()
        self.current_operations: Dict[str, OperationMetrics] = {}
        self.process = psutil.Process(os.getpid())

    def start_operation(self, name: str) -> None:
        """
        Start tracking an operation.

        Args:
            name: Operation name
        """
        memory_mb = self._get_memory_usage()

        self.current_operations[name] = OperationMetrics(
            name=name,
            start_time=time.time(),
            memory_mb_start=memory_mb
        )

        logger.debug("metrics.operation.start",
                    operation=name,
                    memory_mb=round(memory_mb, 2))

    def end_operation(self, name: str, rows_processed: int = 0,
                     success: bool = True,
                     error: Optional[str] = None) -> Optional[OperationMetrics]:
        """
        End tracking an operation.

        Args:
            name: Operation name
            rows_processed: Number of rows written
            success: Whether operation succeeded
            error: Error message if failed

        Returns:
            Completed operation metrics
        """
        operation = self.current_operations.pop(name, None)
        if operation is None:
            logger.warning("metrics.operation.not_found", operation=name)
            return None

        operation.end_time = time.time()
        operation.duration_seconds = operation.end_time - operation.start_time
        operation.rows_processed = rows_processed
        operation.memory_mb_end = self._get_memory_usage()
        operation.success = success
        operation.error = error

        self.run_metrics.operations.append(operation)
        self.run_metrics.total_rows_processed += rows_processed
        if success:
            self.run_metrics.tables_exported += 1
        else:
            self.run_metrics.tables_failed += 1
        self.run_metrics.memory_mb_peak = max(
            self.run_metrics.memory_mb_peak,
            operation.memory_mb_start,
            operation.memory_mb_end
        )

        logger.info("metrics.operation.end",
                   operation=name,
                   duration=round(operation.duration_seconds, 2),
                   rows=rows_processed,
                   rows_per_second=round(operation.rows_per_second, 0),
                   memory_mb=round(operation.memory_mb_end, 2),
                   success=success)
        return operation

    def finalize(self) -> RunMetrics:
        """
        Finalize metrics collection.

        Returns:
            Final run metrics
        """
        self.run_metrics.end_time = datetime.now()
        self.run_metrics.total_duration_seconds = (
            self.run_metrics.end_time - self.run_metrics.start_time
        ).total_seconds()

        logger.info("metrics.run.finalized",
                   duration=round(self.run_metrics.total_duration_seconds, 2),
                   exported=self.run_metrics.tables_exported,
                   failed=self.run_metrics.tables_failed,
                   rows=self.run_metrics.total_rows_processed,
                   memory_mb_peak=round(self.run_metrics.memory_mb_peak, 2))

        return self.run_metrics

    def generate_report(self) -> Dict[str, Any]:
        """
        Generate metrics report.

        Returns:
            Metrics report dictionary
        """
        metrics = self.finalize()

        if metrics.total_duration_seconds > 0:
            rows_per_second = (
                metrics.total_rows_processed / metrics.total_duration_seconds
            )
        else:
            rows_per_second = 0

        return {
            "summary": {
                "total_duration_seconds": round(metrics.total_duration_seconds, 2),
                "total_duration_formatted": self._format_duration(
                    metrics.total_duration_seconds
                ),
                "tables_exported": metrics.tables_exported,
                "tables_failed": metrics.tables_failed,
                "total_rows_processed": metrics.total_rows_processed,
                "rows_per_second": round(rows_per_second, 0),
                "memory_mb_peak": round(metrics.memory_mb_peak, 2),
            },
            "tables": [
                {
                    "name": op.name,
                    "duration_seconds": round(op.duration_seconds or 0, 2),
                    "rows": op.rows_processed,
                    "success": op.success,
                }
                for op in metrics.operations
            ],
        }

    def _get_memory_usage(self) -> float:
        """
        Get current memory usage in MB.

        Returns:
            Memory usage in MB
        """
        return self.process.memory_info().rss / (1024 * 1024)

    def _format_duration(self, seconds: float) -> str:
        """
        Format duration in human-readable format.

        Args:
            seconds: Duration in seconds

        Returns:
            Formatted duration string
        """
        if seconds < 60:
            return f"{seconds:.1f} seconds"
        elif seconds < 3600:
            minutes = seconds / 60
            return f"{minutes:.1f} minutes"
        else:
            hours = seconds / 3600
            return f"{hours:.1f} hours"
