"""Shared fixtures: seeded in-memory DuckDB and a recording adapter."""

from typing import List, Optional

import pytest

from query_catalog.catalog import load_catalog
from query_catalog.datasources.base import AdapterCapability, ExecutionAdapter, ResultSet
from query_catalog.datasources.duckdb import DuckDBAdapter
from query_catalog.demo import create_sales_table, demo_rows, insert_sales_rows


@pytest.fixture
def duckdb_adapter():
    """In-memory DuckDB adapter seeded with the demo sales rows."""
    adapter = DuckDBAdapter("sales_duck", {"path": ":memory:", "read_only": False})
    adapter.connect()
    create_sales_table(adapter.connection)
    insert_sales_rows(adapter.connection, demo_rows())

    yield adapter

    adapter.disconnect()


@pytest.fixture
def empty_duckdb_adapter():
    """In-memory DuckDB adapter with an empty sales table."""
    adapter = DuckDBAdapter("empty_duck", {"path": ":memory:", "read_only": False})
    adapter.connect()
    create_sales_table(adapter.connection)

    yield adapter

    adapter.disconnect()


@pytest.fixture(scope="session")
def builtin_catalog():
    """The bundled sales query catalog."""
    return load_catalog()


class SpyAdapter(ExecutionAdapter):
    """Adapter that records calls and replays scripted outcomes.

    Each entry of ``outcomes`` is either an exception instance to raise or a
    ResultSet to return. The last entry repeats once the script runs out.
    """

    dialect = "duckdb"

    def __init__(self, outcomes: Optional[list] = None, dialect: str = "duckdb"):
        super().__init__("spy", {})
        self.dialect = dialect
        self.outcomes = list(outcomes or [ResultSet.from_columns(["X"], [])])
        self.calls: List = []
        self.connect_calls = 0

    def connect(self) -> None:
        self.connect_calls += 1
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def get_capabilities(self) -> List[AdapterCapability]:
        return [AdapterCapability.PAGINATION]

    def _execute(self, statement, timeout):
        self.calls.append((statement, timeout))
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def spy_adapter_factory():
    """Build SpyAdapter instances inside tests."""
    return SpyAdapter
