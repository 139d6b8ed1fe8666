"""Configuration management."""

from .manager import ConfigManager, ConnectionConfig, ExportConfig

__all__ = ["ConfigManager", "ConnectionConfig", "ExportConfig"]
