"""
Export run orchestration.
Single responsibility: connect once and export every configured table.
"""

import threading
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..adapters.database import DatabaseAdapter, connect
from ..config.manager import ConnectionConfig, ExportConfig
from ..core.exporter import RunOutcome, StreamingExporter
from ..ui.progress import get_progress_monitor
from ..utils.logger import RunLog, get_logger
from ..utils.metrics import MetricsCollector


logger = get_logger()

DONE_MESSAGE = "Download done."


class ExportPipeline:
    """
    Run a batch of table exports over a single database connection.

    A failed table is recorded in the failure log and the batch moves on;
    only connection and filesystem errors abort the run.
    """

    def __init__(self, connection: ConnectionConfig,
                 exports: List[ExportConfig],
                 progress: Optional[Any] = None,
                 adapter: Optional[DatabaseAdapter] = None,
                 cancel_event: Optional[threading.Event] = None):
        """
        Initialize pipeline.

        Args:
            connection: Connection parameters
            exports: Table exports, run in order
            progress: Progress monitor (Rich by default)
            adapter: Already connected adapter; skips connecting
            cancel_event: Stops the current table and the rest of the batch
        """
        self.connection = connection
        self.exports = exports
        self.progress = progress if progress is not None else get_progress_monitor()
        self.adapter = adapter
        self.cancel_event = cancel_event
        self.metrics = MetricsCollector()
        self.run_logs: Dict[Path, RunLog] = {}
        self.outcomes: List[RunOutcome] = []
        self.report: Dict[str, Any] = {}

    def run(self) -> List[RunOutcome]:
        """
        Connect and run every export.

        Returns:
            One outcome per attempted table

        Raises:
            DatabaseConnectionError: If the connection cannot be established
            OSError: If an output directory or file cannot be written
        """
        logger.info("pipeline.starting",
                   url=self.connection.url,
                   tables=len(self.exports))

        adapter = self.adapter or connect(self.connection)

        with ExitStack() as stack:
            if self.adapter is None:
                stack.callback(adapter.close)
            stack.callback(self.progress.stop)

            for export_cfg in self.exports:
                run_log = self._run_log(stack, export_cfg.output_root)
                exporter = StreamingExporter(
                    adapter,
                    export_cfg,
                    run_log,
                    progress=self.progress,
                    metrics=self.metrics,
                    cancel_event=self.cancel_event
                )
                self.outcomes.append(exporter.export())

                if self.cancel_event is not None and self.cancel_event.is_set():
                    logger.warning("pipeline.cancelled",
                                 remaining=len(self.exports) - len(self.outcomes))
                    break

            for run_log in self.run_logs.values():
                run_log.checkpoint(DONE_MESSAGE)

        self.progress.show_export_results(self.outcomes)
        self.report = self.metrics.generate_report()

        logger.info("pipeline.completed",
                   exported=sum(1 for o in self.outcomes if o.ok),
                   failed=self.failures)
        return self.outcomes

    @property
    def failures(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    def _run_log(self, stack: ExitStack, output_root: Path) -> RunLog:
        """One run log per output root, closed when the run ends."""
        key = Path(output_root).resolve()
        if key not in self.run_logs:
            self.run_logs[key] = stack.enter_context(RunLog(output_root))
        return self.run_logs[key]
