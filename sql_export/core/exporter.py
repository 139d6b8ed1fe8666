"""
Streaming table export.
Single responsibility: stream one query result into a delimited file.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Iterator, List, Optional, TextIO, Union

from .codec import ColumnDescriptor, RowEncoder
from .sanitizer import ColumnSanitizer
from ..adapters.database import DatabaseAdapter
from ..config.manager import ExportConfig
from ..errors import QueryError, TypeCodecError
from ..pipeline.estimator import RowCountEstimator
from ..pipeline.probe import HeaderProber
from ..ui.progress import ProgressMonitor
from ..utils.logger import RunLog, get_logger
from ..utils.metrics import MetricsCollector


logger = get_logger()


class ExportState(Enum):
    """Lifecycle of a single table export."""

    CONNECTING = "connecting"
    PROBING_HEADERS = "probing_headers"
    ESTIMATING_COUNT = "estimating_count"
    PREPARING_OUTPUT = "preparing_output"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProgressState:
    """Rows written against the advisory estimate."""

    estimated_total: Optional[int] = None
    completed: int = 0

    def advance(self, rows: int = 1):
        self.completed += rows

    @property
    def overflowed(self) -> bool:
        return (self.estimated_total is not None
                and self.completed > self.estimated_total)


@dataclass
class ExportSuccess:
    """A table export that reached the end of its stream (or was cancelled)."""

    table: str
    rows_written: int
    output_path: Path
    estimated_total: Optional[int] = None
    cancelled: bool = False

    ok: ClassVar[bool] = True


@dataclass
class ExportFailure:
    """A table export abandoned on a query or decoding error."""

    table: str
    cause: str
    state: ExportState
    output_path: Optional[Path] = None

    ok: ClassVar[bool] = False


RunOutcome = Union[ExportSuccess, ExportFailure]


class StreamingExporter:
    """
    Export one query result, row by row, into ``<output>/<table>/<table>.csv``.

    The exporter owns the adapter for the duration of the export. Query and
    decoding errors end in an ``ExportFailure``; filesystem errors propagate.
    """

    def __init__(self, adapter: DatabaseAdapter, config: ExportConfig,
                 run_log: RunLog,
                 progress: Optional[Any] = None,
                 metrics: Optional[MetricsCollector] = None,
                 cancel_event: Optional[threading.Event] = None,
                 prober: Optional[HeaderProber] = None):
        """
        Initialize exporter.

        Args:
            adapter: Connected database adapter
            config: Table export configuration
            run_log: Open run log for checkpoints and failures
            progress: Progress monitor (silent monitor if None)
            metrics: Optional metrics collector
            cancel_event: Checked once per row; when set, the export stops
                early and keeps the rows written so far
            prober: Header prober override
        """
        self.adapter = adapter
        self.config = config
        self.run_log = run_log
        self.progress = progress or ProgressMonitor(verbose=False)
        self.metrics = metrics
        self.cancel_event = cancel_event
        self.prober = prober or HeaderProber()
        self.estimator = RowCountEstimator(config.table, config.index_column)
        self.sanitizer = ColumnSanitizer(config.sanitize_column, config.delimiter)

        self.state = ExportState.PROBING_HEADERS
        self.columns: List[ColumnDescriptor] = []
        self.progress_state = ProgressState()
        self.output_path: Optional[Path] = None
        self._rows: Optional[Iterator[Any]] = None

    def export(self) -> RunOutcome:
        """
        Run the export to completion.

        Returns:
            ExportSuccess or ExportFailure
        """
        table = self.config.table
        self.run_log.checkpoint(f"Checking {table}, please wait...")
        logger.info("exporter.started", table=table)

        if self.metrics:
            self.metrics.start_operation(table)

        try:
            outcome = self._run()
        except (QueryError, TypeCodecError) as e:
            outcome = self._fail(e)
        finally:
            self._release_rows()

        if self.metrics:
            self.metrics.end_operation(
                table,
                rows_processed=self.progress_state.completed,
                success=outcome.ok,
                error=None if outcome.ok else outcome.cause
            )
        return outcome

    def _run(self) -> ExportSuccess:
        table = self.config.table

        self.state = ExportState.PROBING_HEADERS
        self.columns = self.prober.probe(self.adapter, self.config.sql)

        self.state = ExportState.ESTIMATING_COUNT
        self.progress_state = ProgressState(estimated_total=self._estimate())
        self.run_log.checkpoint(
            f"{table}: {len(self.columns)} columns, "
            f"estimated {self._format_total()} rows"
        )

        self.state = ExportState.PREPARING_OUTPUT
        output_path = self._prepare_output()
        self.run_log.checkpoint(f"Writing {output_path}")

        with open(output_path, "w", encoding="utf-8", newline="") as handle:
            self._write_line(handle, [column.name for column in self.columns])
            self.output_path = output_path

            self.state = ExportState.STREAMING
            self.progress.add_task(table,
                                   total=self.progress_state.estimated_total,
                                   description=f"Exporting {table}")
            cancelled = self._stream_rows(handle)

            self.state = ExportState.FINALIZING

        return self._finalize(output_path, cancelled)

    def _estimate(self) -> Optional[int]:
        try:
            return self.estimator.estimate(self.adapter, self.columns)
        except QueryError as e:
            if self.config.abort_on_count_failure:
                raise
            logger.warning("exporter.estimate.unavailable",
                         table=self.config.table,
                         error=str(e))
            self.run_log.checkpoint(
                f"Row estimate for {self.config.table} unavailable: {e}"
            )
            self.progress.log_warning(
                f"{self.config.table}: row estimate unavailable, progress is indeterminate"
            )
            return None

    def _format_total(self) -> str:
        total = self.progress_state.estimated_total
        return "unknown" if total is None else f"{total:,}"

    def _prepare_output(self) -> Path:
        """Create <output>/<table>/ and return the target file path."""
        output_path = self.config.output_path
        output_path.parent.mkdir(parents=True, exist_ok=True)
        return output_path

    def _write_line(self, handle: TextIO, values: List[str]):
        handle.write(self.config.delimiter.join(values))
        handle.write("\n")

    def _stream_rows(self, handle: TextIO) -> bool:
        """
        Encode, sanitize and write every row in arrival order.

        Returns:
            True if the export was cancelled before the stream ended
        """
        table = self.config.table
        encoder = RowEncoder(self.columns)
        self.sanitizer.bind(self.columns)

        # Closed by export() after the outcome is recorded
        self._rows = self.adapter.stream(self.config.sql)
        for row in self._rows:
            if self.cancel_event is not None and self.cancel_event.is_set():
                return True

            encoded = encoder.encode(row)
            self.sanitizer.apply(encoded)
            self._write_line(handle, encoded)

            self.progress_state.advance()
            self.progress.update_task(table)
        return False

    def _release_rows(self):
        if self._rows is not None:
            rows, self._rows = self._rows, None
            rows.close()

    def _finalize(self, output_path: Path, cancelled: bool) -> ExportSuccess:
        table = self.config.table
        written = self.progress_state.completed

        if cancelled:
            self.progress.fail_task(table, message=f"{table}: cancelled")
        else:
            self.progress.complete_task(table, message=f"{table}: {written:,} rows")

        if self.progress_state.overflowed:
            logger.debug("exporter.estimate.exceeded",
                         table=table,
                         estimated=self.progress_state.estimated_total,
                         written=written)

        if cancelled:
            logger.warning("exporter.cancelled", table=table, rows=written)
            self.progress.log_warning(f"{table}: cancelled after {written:,} rows")
            self.run_log.checkpoint(f"Cancelled {table} after {written} rows")

        self.run_log.checkpoint(f"Exported {written} rows to {output_path}")
        self.state = ExportState.COMPLETED

        logger.info("exporter.completed",
                   table=table,
                   rows=written,
                   output=str(output_path))

        return ExportSuccess(
            table=table,
            rows_written=written,
            output_path=output_path,
            estimated_total=self.progress_state.estimated_total,
            cancelled=cancelled
        )

    def _fail(self, error: Exception) -> ExportFailure:
        table = self.config.table
        failed_in = self.state
        self.state = ExportState.FAILED
        cause = str(error)

        self.progress.fail_task(table, message=f"{table}: failed")
        self.progress.log_error(f"{table}: {cause}")
        self.run_log.failure(table, cause)

        # Rows written before a mid-stream failure stay on disk
        partial = self.output_path if failed_in is ExportState.STREAMING else None
        if partial is not None:
            self.run_log.checkpoint(
                f"Partial output kept at {partial} "
                f"({self.progress_state.completed} rows)"
            )

        logger.error("exporter.failed",
                    table=table,
                    state=failed_in.value,
                    error=cause)

        return ExportFailure(table=table, cause=cause, state=failed_in,
                             output_path=partial)
