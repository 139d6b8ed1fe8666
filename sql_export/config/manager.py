"""
Configuration management.
Single responsibility: load, validate, and manage configuration.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass

from ..errors import ConfigError
from ..utils.logger import get_logger


logger = get_logger()

SUPPORTED_DRIVERS = ("mysql", "duckdb")
DEFAULT_OUTPUT = "./output"
DEFAULT_DELIMITER = "|"


@dataclass
class ConnectionConfig:
    """Database connection parameters."""

    driver: str = "mysql"
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = ""

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.driver = (self.driver or "").lower()
        if self.driver not in SUPPORTED_DRIVERS:
            raise ConfigError(
                f"Unsupported driver: {self.driver!r} "
                f"(expected one of {', '.join(SUPPORTED_DRIVERS)})"
            )
        try:
            self.port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid port: {self.port!r}")
        if self.driver == "mysql" and not self.database:
            raise ConfigError("Database name is required")

    @property
    def url(self) -> str:
        """Connection URL with the password masked, for logging."""
        if self.driver == "duckdb":
            return f"duckdb:///{self.database or ':memory:'}"
        return (f"mysql://{self.user}:***@{self.host}:"
                f"{self.port}/{self.database}")


@dataclass
class ExportConfig:
    """Configuration for a single table export."""

    table: str
    sql: str
    output: str = DEFAULT_OUTPUT
    delimiter: str = DEFAULT_DELIMITER
    sanitize_column: str = ""
    index_column: str = ""
    abort_on_count_failure: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.table:
            raise ConfigError("Table name is required")
        if not self.sql or not self.sql.strip():
            raise ConfigError(f"SQL query is required for table {self.table}")
        if len(self.delimiter) != 1 or len(self.delimiter.encode("utf-8")) != 1:
            raise ConfigError(
                f"Delimiter must be a single byte, got {self.delimiter!r}"
            )
        self.sanitize_column = self.sanitize_column or ""
        self.index_column = self.index_column or ""

    @property
    def output_root(self) -> Path:
        return Path(self.output)

    @property
    def output_path(self) -> Path:
        """Target file: <output>/<table>/<table>.csv"""
        return self.output_root / self.table / f"{self.table}.csv"


class ConfigManager:
    """
    Manage batch export configuration.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config manager.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = Path(config_path or "exports.yaml")
        self.config: Dict[str, Any] = {}
        self.connection: Optional[ConnectionConfig] = None
        self.exports: List[ExportConfig] = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file.

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config is invalid YAML
            ConfigError: If a section is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")

        logger.info("config.loading", file=str(self.config_path))

        with open(self.config_path) as f:
            self.config = yaml.safe_load(f) or {}

        self._parse_connection()
        self._parse_exports()

        logger.info("config.loaded",
                   driver=self.connection.driver,
                   exports=len(self.exports))

        return self.config

    def _parse_connection(self):
        """Parse the connection section."""
        cfg = self.config.get("connection") or {}
        try:
            self.connection = ConnectionConfig(
                driver=cfg.get("driver", "mysql"),
                host=cfg.get("host", "localhost"),
                port=cfg.get("port", 3306),
                user=cfg.get("user", "root"),
                password=str(cfg.get("password", "") or ""),
                database=cfg.get("database", ""),
            )
        except ConfigError as e:
            logger.error("config.connection.invalid", error=str(e))
            raise

    def _parse_exports(self):
        """Parse export configurations, applying the defaults section."""
        defaults = self.config.get("defaults") or {}
        entries = self.config.get("exports") or []

        if not entries:
            raise ConfigError(f"No exports defined in {self.config_path}")

        self.exports = []
        for entry in entries:
            merged = {**defaults, **entry}
            try:
                export_cfg = ExportConfig(
                    table=merged.get("table", ""),
                    sql=merged.get("sql", ""),
                    output=str(merged.get("output", DEFAULT_OUTPUT)),
                    delimiter=str(merged.get("delimiter", DEFAULT_DELIMITER)),
                    sanitize_column=merged.get("sanitize_column", ""),
                    index_column=merged.get("index_column", ""),
                    abort_on_count_failure=merged.get("abort_on_count_failure", True)
                )
                self.exports.append(export_cfg)
            except ConfigError as e:
                logger.error("config.export.invalid",
                           table=entry.get("table"),
                           error=str(e))
                raise

    def get_export(self, table: str) -> ExportConfig:
        """
        Get export configuration by table name.

        Args:
            table: Table name

        Returns:
            Export configuration

        Raises:
            KeyError: If no export targets the table
        """
        for export_cfg in self.exports:
            if export_cfg.table == table:
                return export_cfg
        raise KeyError(f"Export not found: {table}")

    def save(self, path: Optional[Path] = None):
        """
        Save configuration to file.

        Args:
            path: Output path (defaults to the loaded config path)
        """
        output_path = Path(path or self.config_path)

        logger.info("config.saving", file=str(output_path))

        config_dict: Dict[str, Any] = {"exports": []}

        if self.connection:
            config_dict["connection"] = {
                "driver": self.connection.driver,
                "host": self.connection.host,
                "port": self.connection.port,
                "user": self.connection.user,
                "password": self.connection.password,
                "database": self.connection.database,
            }

        for export_cfg in self.exports:
            entry = {
                "table": export_cfg.table,
                "sql": export_cfg.sql,
                "output": export_cfg.output,
                "delimiter": export_cfg.delimiter,
            }
            if export_cfg.sanitize_column:
                entry["sanitize_column"] = export_cfg.sanitize_column
            if export_cfg.index_column:
                entry["index_column"] = export_cfg.index_column
            if not export_cfg.abort_on_count_failure:
                entry["abort_on_count_failure"] = False
            config_dict["exports"].append(entry)

        with open(output_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info("config.saved", file=str(output_path))
