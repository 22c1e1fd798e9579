"""Backend execution adapters."""

from .base import AdapterCapability, ExecutionAdapter, ResultSet, ensure_read_only
from .duckdb import DuckDBAdapter
from .factory import create_adapter
from .postgresql import PostgreSQLAdapter

__all__ = [
    "AdapterCapability",
    "ExecutionAdapter",
    "ResultSet",
    "ensure_read_only",
    "DuckDBAdapter",
    "PostgreSQLAdapter",
    "create_adapter",
]
