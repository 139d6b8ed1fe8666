"""Utility functions and helpers."""

from .logger import get_logger, StructuredLogger, RunLog
from .metrics import MetricsCollector

__all__ = [
    "get_logger",
    "StructuredLogger",
    "RunLog",
    "MetricsCollector",
]
