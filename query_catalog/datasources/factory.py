"""Create execution adapters from configuration."""

from typing import Dict, Optional, Type

from ..config import DataSourceConfig, ExecutorConfig
from .base import ExecutionAdapter
from .duckdb import DuckDBAdapter
from .postgresql import PostgreSQLAdapter

ADAPTER_TYPES: Dict[str, Type[ExecutionAdapter]] = {
    "duckdb": DuckDBAdapter,
    "postgresql": PostgreSQLAdapter,
    "postgres": PostgreSQLAdapter,
}


def create_adapter(
    ds_config: DataSourceConfig, executor: Optional[ExecutorConfig] = None
) -> ExecutionAdapter:
    """Instantiate the adapter for a configured data source.

    Executor-level settings act as defaults underneath the data source's own
    configuration keys.

    Raises:
        ValueError: If the data source type is unknown
    """
    adapter_cls = ADAPTER_TYPES.get(ds_config.type)
    if adapter_cls is None:
        raise ValueError(f"Unsupported data source type: {ds_config.type}")

    config = {}
    if executor is not None:
        config.update(executor.adapter_defaults())
    config.update(ds_config.config)
    return adapter_cls(ds_config.name, config)
