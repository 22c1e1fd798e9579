"""Catalog of example SQL queries with typed parameters, dialect variants
and checkable result expectations."""

from .binder import BoundStatement, ParameterBinder
from .catalog import Catalog, Category, QueryDefinition, load_catalog
from .datasources import DuckDBAdapter, PostgreSQLAdapter, ResultSet
from .processor import QueryRunner, run_with_retries
from .validate import InvocationState, Report, ResultValidator

__version__ = "0.1.0"

__all__ = [
    "BoundStatement",
    "ParameterBinder",
    "Catalog",
    "Category",
    "QueryDefinition",
    "load_catalog",
    "DuckDBAdapter",
    "PostgreSQLAdapter",
    "ResultSet",
    "QueryRunner",
    "run_with_retries",
    "InvocationState",
    "Report",
    "ResultValidator",
]
