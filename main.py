#!/usr/bin/env python3
"""
SQL Export - Main Entry Point
Export the result of a SQL query into a delimited text file.
"""

import argparse
import sys
import traceback
from pathlib import Path

import yaml

from sql_export import (
    ConfigManager,
    ConnectionConfig,
    ExportConfig,
    ExportError,
    ExportPipeline,
    DatabaseConnectionError,
    get_progress_monitor,
    get_logger,
    __version__,
)


logger = get_logger()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TABLE_FAILED = 2

SAMPLE_CONFIG = """# SQL Export Configuration
# ========================

connection:
  driver: mysql          # mysql or duckdb
  host: localhost
  port: 3306
  user: root
  password: ""
  database: shop

defaults:
  output: ./output
  delimiter: "|"

exports:
  # One entry per table; each gets <output>/<table>/<table>.csv
  - table: users
    sql: SELECT id, name, email FROM users
    sanitize_column: name   # strip the delimiter from this column
    index_column: id        # use MAX(id) instead of COUNT(*) for progress

  - table: orders
    sql: SELECT * FROM orders WHERE created_at >= '2024-01-01'
"""


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file.

    Args:
        output_path: Where to save the config
    """
    output_path.write_text(SAMPLE_CONFIG)
    print(f"Sample configuration created: {output_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SQL Export - stream a SQL query result into a delimited file"
    )

    parser.add_argument(
        "--config", "-c",
        help="YAML batch file; overrides the single-table flags below"
    )

    connection = parser.add_argument_group("connection")
    connection.add_argument("--driver", default="mysql",
                            choices=["mysql", "duckdb"],
                            help="Database driver (default: mysql)")
    connection.add_argument("--host", "-H", default="localhost",
                            help="Sets the database host")
    connection.add_argument("--port", "-P", default="3306",
                            help="Sets the database port")
    connection.add_argument("--user", "--username", "-u", default="root",
                            help="Sets the database user")
    connection.add_argument("--password", "-p", default="",
                            help="Sets the database password")
    connection.add_argument("--database", "-d", default="",
                            help="Sets the database name (DuckDB: file path)")

    export = parser.add_argument_group("export")
    export.add_argument("--table", "-t", help="Sets the table name")
    export.add_argument("--sql", "-s", help="The SQL query script")
    export.add_argument("--sanitize-column", "--repcol", "-r", default="",
                        help="Column whose values get the delimiter stripped")
    export.add_argument("--index-column", "-i", default="",
                        help="Unique sequential column; MAX() of it estimates progress")
    export.add_argument("--delimiter", default="|",
                        help="Output delimiter (default: |)")
    export.add_argument("--output", "-o", default="./output",
                        help="The output path for saving files")
    export.add_argument("--lenient-count", action="store_true",
                        help="Keep exporting when the row estimate query fails")

    parser.add_argument("--strict", action="store_true",
                        help="Exit with status 2 when any table fails")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--no-rich", action="store_true",
                        help="Disable Rich progress bars")
    parser.add_argument("--create-sample", action="store_true",
                        help="Create sample configuration file")
    parser.add_argument("--version", action="version",
                        version=f"SQL Export v{__version__}")
    return parser


def load_configuration(args: argparse.Namespace):
    """
    Build connection and export configs from a batch file or from flags.

    Returns:
        (ConnectionConfig, list of ExportConfig)
    """
    if args.config:
        manager = ConfigManager(Path(args.config))
        manager.load()
        return manager.connection, manager.exports

    missing = [flag for flag, value in (("--table", args.table), ("--sql", args.sql))
               if not value]
    if missing:
        raise ExportError(f"Missing required option(s): {', '.join(missing)}")

    connection = ConnectionConfig(
        driver=args.driver,
        host=args.host,
        port=args.port,
        user=args.user,
        password=args.password,
        database=args.database,
    )
    export_cfg = ExportConfig(
        table=args.table,
        sql=args.sql,
        output=args.output,
        delimiter=args.delimiter,
        sanitize_column=args.sanitize_column,
        index_column=args.index_column,
        abort_on_count_failure=not args.lenient_count,
    )
    return connection, [export_cfg]


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logger.min_level = "DEBUG"

    if args.create_sample:
        create_sample_config(Path("exports_sample.yaml"))
        return EXIT_OK

    try:
        connection, exports = load_configuration(args)
    except (ExportError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    pipeline = ExportPipeline(
        connection,
        exports,
        progress=get_progress_monitor(use_rich=not args.no_rich)
    )

    try:
        pipeline.run()
    except DatabaseConnectionError as e:
        print(f"{e}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        logger.error("pipeline.io_failed",
                    error=str(e),
                    traceback=traceback.format_exc())
        print(f"Application error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.strict and pipeline.failures:
        return EXIT_TABLE_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
