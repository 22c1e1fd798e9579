"""Configuration management for the query catalog runner."""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import yaml
from pathlib import Path


@dataclass
class DataSourceConfig:
    """Configuration for a single backend."""

    name: str
    type: str  # "postgresql", "duckdb"
    config: Dict[str, Any]


@dataclass
class CatalogConfig:
    """Which catalog files to load."""

    paths: List[str] = field(default_factory=list)
    include_builtin: bool = True


@dataclass
class ExecutorConfig:
    """Defaults applied to every adapter."""

    batch_size: int = 10000
    statement_timeout_seconds: Optional[float] = None
    connect_timeout_seconds: float = 10.0
    min_connections: int = 1
    max_connections: int = 5

    def adapter_defaults(self) -> Dict[str, Any]:
        """Settings in the adapter configuration vocabulary."""
        defaults = {
            "batch_size": self.batch_size,
            "connect_timeout": self.connect_timeout_seconds,
            "min_connections": self.min_connections,
            "max_connections": self.max_connections,
        }
        if self.statement_timeout_seconds is not None:
            defaults["statement_timeout"] = self.statement_timeout_seconds
        return defaults


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    structured: bool = False
    log_file: Optional[str] = None


@dataclass
class Config:
    """Main configuration class."""

    datasources: Dict[str, DataSourceConfig] = field(default_factory=dict)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Parsed configuration

    Example YAML format:
        datasources:
          warehouse:
            type: postgresql
            dsn_env: QCAT_POSTGRES_DSN
            max_connections: 8

          local_duckdb:
            type: duckdb
            path: /data/sales.duckdb
            read_only: true

        catalog:
          paths: [queries/finance.yaml]
          include_builtin: true

        executor:
          batch_size: 5000
          statement_timeout_seconds: 30

        logging:
          level: DEBUG
          structured: true
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Parse data sources
    datasources = {}
    for name, ds_config in (data.get("datasources") or {}).items():
        ds_config = dict(ds_config)
        ds_type = ds_config.pop("type")
        datasources[name] = DataSourceConfig(name=name, type=ds_type, config=ds_config)

    catalog = CatalogConfig(**(data.get("catalog") or {}))
    executor = ExecutorConfig(**(data.get("executor") or {}))
    logging_config = LoggingConfig(**(data.get("logging") or {}))

    return Config(
        datasources=datasources,
        catalog=catalog,
        executor=executor,
        logging=logging_config,
    )
