"""
Structured logging and the persistent run log.
Single responsibility: provide consistent logging across application.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, TextIO
import json


RUN_LOG_NAME = "logs.log"
FAILED_LOG_NAME = "failed.log"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class StructuredLogger:
    """
    Structured logger for consistent application logging.
    """

    def __init__(self, name: str = "sql-export",
                 log_file: Optional[Path] = None,
                 min_level: str = "INFO"):
        """
        Initialize logger.

        Args:
            name: Logger name
            log_file: Optional file path for logging
            min_level: Lowest level printed to the console
        """
        self.name = name
        self.log_file = log_file
        self.min_level = min_level

    LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "CRITICAL": 50}

    def _format_message(self, level: str, message: str,
                       **kwargs) -> Dict[str, Any]:
        """
        Format log message with metadata.

        Args:
            level: Log level (INFO, DEBUG, ERROR, etc.)
            message: Log message
            **kwargs: Additional context fields

        Returns:
            Formatted log entry
        """
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "logger": self.name,
            "message": message
        }

        if kwargs:
            entry["context"] = kwargs

        return entry

    def _output(self, entry: Dict[str, Any]):
        """
        Output log entry to console and optionally file.

        Args:
            entry: Log entry dictionary
        """
        # File output - JSON for parsing
        if self.log_file:
            with open(self.log_file, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")

        if self.LEVELS[entry["level"]] < self.LEVELS.get(self.min_level, 20):
            return

        # Console output - human readable
        timestamp = entry["timestamp"].split("T")[1][:8]
        level = entry["level"]
        msg = entry["message"]

        print(f"[{timestamp}] {level:5} | {msg}", file=sys.stderr)

        if "context" in entry:
            for key, value in entry["context"].items():
                print(f"  {key}={value}", file=sys.stderr)

    def info(self, message: str, **kwargs):
        """Log info message."""
        entry = self._format_message("INFO", message, **kwargs)
        self._output(entry)

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        entry = self._format_message("DEBUG", message, **kwargs)
        self._output(entry)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        entry = self._format_message("WARN", message, **kwargs)
        self._output(entry)

    def error(self, message: str, **kwargs):
        """Log error message."""
        entry = self._format_message("ERROR", message, **kwargs)
        self._output(entry)


class RunLog:
    """
    Append-only run log and failure log under the output root.

    Every checkpoint goes to ``logs.log`` as ``<timestamp> => <message>``.
    Failures additionally go to ``failed.log`` as ``<table>: <cause>``;
    that file is only opened once the first failure happens.
    """

    def __init__(self, output_root: Path):
        """
        Initialize run log.

        Args:
            output_root: Export output directory holding both log files
        """
        self.output_root = Path(output_root)
        self.run_log_path = self.output_root / RUN_LOG_NAME
        self.failed_log_path = self.output_root / FAILED_LOG_NAME
        self._run_handle: Optional[TextIO] = None
        self._failed_handle: Optional[TextIO] = None
        self.failures = 0

    def open(self) -> "RunLog":
        """Create the output root if needed and open the run log."""
        if self._run_handle is None:
            self.output_root.mkdir(parents=True, exist_ok=True)
            self._run_handle = open(self.run_log_path, "a",
                                    encoding="utf-8", buffering=1)
        return self

    def close(self):
        """Flush and close both log files."""
        for handle in (self._run_handle, self._failed_handle):
            if handle is not None:
                handle.close()
        self._run_handle = None
        self._failed_handle = None

    def __enter__(self) -> "RunLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @staticmethod
    def format_line(message: str, now: Optional[datetime] = None) -> str:
        now = now or datetime.now()
        return f"{now.strftime(TIMESTAMP_FORMAT)} => {message}\n"

    def checkpoint(self, message: str):
        """
        Append a timestamped line to the run log.

        Args:
            message: Checkpoint message
        """
        if self._run_handle is None:
            self.open()
        self._run_handle.write(self.format_line(message))

    def failure(self, table: str, cause: str):
        """
        Record a failed table export.

        Args:
            table: Table name
            cause: Error text
        """
        # One line per failure; driver messages can span several
        cause = " ".join(str(cause).split())
        if self._failed_handle is None:
            self.output_root.mkdir(parents=True, exist_ok=True)
            self._failed_handle = open(self.failed_log_path, "a",
                                       encoding="utf-8", buffering=1)
        self._failed_handle.write(f"{table}: {cause}\n")
        self.checkpoint(f"Error with {table}: {cause}")
        self.failures += 1


# Global logger instance
_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "sql-export") -> StructuredLogger:
    """
    Get or create logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    global _logger
    if _logger is None:
        _logger = StructuredLogger(name)
    return _logger
