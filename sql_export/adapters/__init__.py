"""Database adapters."""

from .database import DatabaseAdapter, DuckDBAdapter, MySQLAdapter, connect

__all__ = ["DatabaseAdapter", "DuckDBAdapter", "MySQLAdapter", "connect"]
