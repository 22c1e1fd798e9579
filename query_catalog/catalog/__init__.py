"""Query definitions and the catalog that holds them."""

from .catalog import Catalog
from .definition import (
    Category,
    Expectation,
    ExpectationKind,
    Parameter,
    ParameterType,
    QueryDefinition,
    find_placeholders,
)
from .loader import builtin_catalog_path, dump_catalog, load_catalog, read_records

__all__ = [
    "Catalog",
    "Category",
    "Expectation",
    "ExpectationKind",
    "Parameter",
    "ParameterType",
    "QueryDefinition",
    "find_placeholders",
    "builtin_catalog_path",
    "dump_catalog",
    "load_catalog",
    "read_records",
]
