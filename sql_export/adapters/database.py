"""
Database adapters.
Single responsibility: run preview, scalar and streaming queries against a backend.
"""

import re
from typing import Any, Iterator, List, Optional, Tuple

import duckdb
import mysql.connector
from mysql.connector import pooling
from mysql.connector.constants import FieldFlag, FieldType

from ..config.manager import ConnectionConfig
from ..errors import DatabaseConnectionError, QueryError
from ..utils.logger import get_logger


logger = get_logger()

DEFAULT_BATCH_SIZE = 1000

# mysql-connector field type names -> canonical type tags
MYSQL_TAGS = {
    "DECIMAL": "DECIMAL",
    "NEWDECIMAL": "DECIMAL",
    "TINY": "TINYINT",
    "SHORT": "SMALLINT",
    "INT24": "MEDIUMINT",
    "LONG": "INT",
    "LONGLONG": "BIGINT",
    "FLOAT": "FLOAT",
    "DOUBLE": "DOUBLE",
    "DATETIME": "DATETIME",
    "TIMESTAMP": "TIMESTAMP",
    "DATE": "DATE",
    "NEWDATE": "DATE",
    "VARCHAR": "VARCHAR",
    "VAR_STRING": "VARCHAR",
    "STRING": "CHAR",
    "TINY_BLOB": "TINYBLOB",
    "BLOB": "BLOB",
    "MEDIUM_BLOB": "MEDIUMBLOB",
    "LONG_BLOB": "LONGBLOB",
}

# BLOB and TEXT share a wire type; only the binary flag tells them apart
MYSQL_TEXT_TAGS = {
    "TINYBLOB": "TINYTEXT",
    "BLOB": "TEXT",
    "MEDIUMBLOB": "MEDIUMTEXT",
    "LONGBLOB": "LONGTEXT",
}

MYSQL_BINARY_STRING_TAGS = {
    "VARCHAR": "VARBINARY",
    "CHAR": "BINARY",
}

MYSQL_INTEGER_TAGS = {"TINYINT", "SMALLINT", "MEDIUMINT", "INT", "BIGINT"}

DUCKDB_TAGS = {
    "TIMESTAMP": "DATETIME",
    "TIMESTAMP_S": "DATETIME",
    "TIMESTAMP_MS": "DATETIME",
    "TIMESTAMP_NS": "DATETIME",
    "TIMESTAMP WITH TIME ZONE": "DATETIME",
    "UINTEGER": "INT UNSIGNED",
}


class DatabaseAdapter:
    """
    Common query interface over a single database connection.
    """

    driver = ""

    def preview(self, sql: str) -> List[Tuple[str, str]]:
        """
        Execute a bounded query and describe its result set.

        Args:
            sql: Query text (expected to carry its own LIMIT)

        Returns:
            Ordered (column name, type tag) pairs

        Raises:
            QueryError: If the query fails
        """
        raise NotImplementedError

    def stream(self, sql: str,
               batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[Tuple[Any, ...]]:
        """
        Execute a query and yield its rows in arrival order.

        Args:
            sql: Query text
            batch_size: Rows pulled from the driver per fetch

        Yields:
            Raw row tuples

        Raises:
            QueryError: If the query fails before or during streaming
        """
        raise NotImplementedError

    def scalar(self, sql: str) -> Any:
        """
        Execute a query and return the first column of its first row.

        Raises:
            QueryError: If the query fails
        """
        raise NotImplementedError

    def close(self):
        """Release the connection."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class MySQLAdapter(DatabaseAdapter):
    """
    MySQL-compatible backend on a single pooled connection.
    """

    driver = "mysql"

    def __init__(self, config: ConnectionConfig, pool_name: str = "sql_export"):
        """
        Open the connection pool and take its only connection.

        Args:
            config: Connection parameters
            pool_name: Pool identifier

        Raises:
            DatabaseConnectionError: If the pool cannot be established
        """
        self.config = config
        logger.info("database.connecting", url=config.url)
        try:
            self.pool = pooling.MySQLConnectionPool(
                pool_name=pool_name,
                pool_size=1,
                host=config.host,
                port=config.port,
                user=config.user,
                password=config.password,
                database=config.database,
            )
            self.connection = self.pool.get_connection()
        except mysql.connector.Error as e:
            raise DatabaseConnectionError(f"connect mysql error: {e}") from e
        logger.info("database.connected", url=config.url)

    @staticmethod
    def normalize_type(type_code: int, flags: int = 0) -> str:
        """
        Map a cursor description type code to a type tag.

        Args:
            type_code: mysql-connector field type code
            flags: Column flags from the cursor description

        Returns:
            Type tag such as ``INT UNSIGNED`` or ``MEDIUMBLOB``
        """
        name = FieldType.get_info(type_code) or "UNKNOWN"
        tag = MYSQL_TAGS.get(name, name)
        binary = bool(flags & FieldFlag.BINARY)

        if tag in MYSQL_TEXT_TAGS and not binary:
            tag = MYSQL_TEXT_TAGS[tag]
        elif tag in MYSQL_BINARY_STRING_TAGS and binary:
            tag = MYSQL_BINARY_STRING_TAGS[tag]

        if tag in MYSQL_INTEGER_TAGS and flags & FieldFlag.UNSIGNED:
            tag = f"{tag} UNSIGNED"
        return tag

    def _describe(self, description) -> List[Tuple[str, str]]:
        columns = []
        for desc in description:
            flags = desc[7] if len(desc) > 7 and desc[7] else 0
            columns.append((desc[0], self.normalize_type(desc[1], flags)))
        return columns

    def preview(self, sql: str) -> List[Tuple[str, str]]:
        cursor = self.connection.cursor(buffered=True)
        try:
            cursor.execute(sql)
            if cursor.description is None:
                raise QueryError("query returned no result set", query=sql)
            columns = self._describe(cursor.description)
            cursor.fetchall()
        except mysql.connector.Error as e:
            raise QueryError(str(e), query=sql) from e
        finally:
            cursor.close()
        return columns

    def stream(self, sql: str,
               batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[Tuple[Any, ...]]:
        # Unbuffered cursor: rows are read off the socket as they are fetched
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql)
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    break
                yield from rows
        except mysql.connector.Error as e:
            raise QueryError(str(e), query=sql) from e
        finally:
            if self.connection.unread_result:
                self.connection.consume_results()
            cursor.close()

    def scalar(self, sql: str) -> Any:
        cursor = self.connection.cursor(buffered=True)
        try:
            cursor.execute(sql)
            row = cursor.fetchone()
        except mysql.connector.Error as e:
            raise QueryError(str(e), query=sql) from e
        finally:
            cursor.close()
        return row[0] if row else None

    def close(self):
        if self.connection is not None:
            self.connection.close()
            self.connection = None
            logger.debug("database.closed", url=self.config.url)


class DuckDBAdapter(DatabaseAdapter):
    """
    DuckDB backend, for database files and in-memory databases.
    """

    driver = "duckdb"

    def __init__(self, config: Optional[ConnectionConfig] = None,
                 connection: Optional[duckdb.DuckDBPyConnection] = None):
        """
        Open (or wrap) a DuckDB connection.

        Args:
            config: Connection parameters; ``database`` is the file path
            connection: Existing connection to use instead of opening one

        Raises:
            DatabaseConnectionError: If the database cannot be opened
        """
        self._owns_connection = connection is None
        if connection is not None:
            self.connection = connection
            return

        database = (config.database if config else "") or ":memory:"
        logger.info("database.connecting", url=f"duckdb:///{database}")
        try:
            self.connection = duckdb.connect(database)
        except duckdb.Error as e:
            raise DatabaseConnectionError(f"connect duckdb error: {e}") from e

    @staticmethod
    def normalize_type(type_name: str) -> str:
        """
        Map a DuckDB type name to a type tag.

        Args:
            type_name: Type as printed by DuckDB, e.g. ``DECIMAL(18,3)``

        Returns:
            Type tag such as ``DECIMAL`` or ``DATETIME``
        """
        tag = re.sub(r"\(.*?\)", "", str(type_name)).strip().upper()
        return DUCKDB_TAGS.get(tag, tag)

    def preview(self, sql: str) -> List[Tuple[str, str]]:
        try:
            relation = self.connection.sql(sql)
            if relation is None:
                raise QueryError("query returned no result set", query=sql)
            columns = [(name, self.normalize_type(dtype))
                       for name, dtype in zip(relation.columns, relation.types)]
            relation.fetchall()
        except duckdb.Error as e:
            raise QueryError(str(e), query=sql) from e
        return columns

    def stream(self, sql: str,
               batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[Tuple[Any, ...]]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql)
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    break
                yield from rows
        except duckdb.Error as e:
            raise QueryError(str(e), query=sql) from e
        finally:
            cursor.close()

    def scalar(self, sql: str) -> Any:
        try:
            row = self.connection.execute(sql).fetchone()
        except duckdb.Error as e:
            raise QueryError(str(e), query=sql) from e
        return row[0] if row else None

    def close(self):
        if self._owns_connection and self.connection is not None:
            self.connection.close()
            self.connection = None


def connect(config: ConnectionConfig) -> DatabaseAdapter:
    """
    Open the adapter matching the configured driver.

    Args:
        config: Connection parameters

    Returns:
        Connected adapter

    Raises:
        DatabaseConnectionError: If the connection cannot be established
    """
    if config.driver == "duckdb":
        return DuckDBAdapter(config)
    return MySQLAdapter(config)
