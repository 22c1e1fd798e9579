"""Configuration management."""

from .config import (
    Config,
    DataSourceConfig,
    CatalogConfig,
    ExecutorConfig,
    LoggingConfig,
    load_config,
)

__all__ = [
    "Config",
    "DataSourceConfig",
    "CatalogConfig",
    "ExecutorConfig",
    "LoggingConfig",
    "load_config",
]
