"""Core encoding and export logic."""

from .codec import ColumnDescriptor, ColumnType, RowEncoder, encode_value
from .sanitizer import ColumnSanitizer
from .exporter import (
    ExportFailure,
    ExportState,
    ExportSuccess,
    ProgressState,
    StreamingExporter,
)

__all__ = [
    "ColumnDescriptor",
    "ColumnType",
    "RowEncoder",
    "encode_value",
    "ColumnSanitizer",
    "ExportFailure",
    "ExportState",
    "ExportSuccess",
    "ProgressState",
    "StreamingExporter",
]
