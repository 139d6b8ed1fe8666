"""
Export error taxonomy.
Single responsibility: name the ways an export can fail.
"""


class ExportError(Exception):
    """Base class for all export errors."""


class ConfigError(ExportError):
    """Raised when an export configuration is invalid."""


class DatabaseConnectionError(ExportError):
    """Raised when the database connection cannot be established."""


class QueryError(ExportError):
    """Raised when a probe, estimate or streaming query fails."""

    def __init__(self, message: str, query: str = ""):
        super().__init__(message)
        self.query = query


class TypeCodecError(ExportError):
    """Raised when a value cannot be decoded under its declared type."""

    def __init__(self, message: str, column: str = "", type_tag: str = ""):
        super().__init__(message)
        self.column = column
        self.type_tag = type_tag
