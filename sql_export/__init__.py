"""
SQL Export - streaming, type-aware export of SQL query results to delimited files.
"""

__version__ = "1.0.0"

from .errors import (
    ExportError,
    ConfigError,
    DatabaseConnectionError,
    QueryError,
    TypeCodecError,
)
from .config.manager import ConfigManager, ConnectionConfig, ExportConfig
from .adapters.database import DatabaseAdapter, DuckDBAdapter, MySQLAdapter, connect
from .core.codec import ColumnDescriptor, ColumnType, RowEncoder, encode_value
from .core.exporter import (
    ExportFailure,
    ExportState,
    ExportSuccess,
    StreamingExporter,
)
from .pipeline.runner import ExportPipeline
from .ui.progress import ProgressMonitor, get_progress_monitor
from .utils.logger import RunLog, get_logger

__all__ = [
    "ExportError",
    "ConfigError",
    "DatabaseConnectionError",
    "QueryError",
    "TypeCodecError",
    "ConfigManager",
    "ConnectionConfig",
    "ExportConfig",
    "DatabaseAdapter",
    "DuckDBAdapter",
    "MySQLAdapter",
    "connect",
    "ColumnDescriptor",
    "ColumnType",
    "RowEncoder",
    "encode_value",
    "ExportFailure",
    "ExportState",
    "ExportSuccess",
    "StreamingExporter",
    "ExportPipeline",
    "ProgressMonitor",
    "get_progress_monitor",
    "RunLog",
    "get_logger",
]
