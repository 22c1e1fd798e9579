"""Tests for the query runner and the caller-side retry helper."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from query_catalog.catalog import Catalog, load_catalog
from query_catalog.datasources import ResultSet
from query_catalog.datasources.duckdb import DuckDBAdapter
from query_catalog.demo import create_sales_table, insert_sales_rows, make_sales_row
from query_catalog.errors import (
    BackendConnectionError,
    ExecutionError,
    NotFoundError,
    SchemaMismatchError,
    UnknownParameterError,
    UnsupportedDialectError,
)
from query_catalog.processor import QueryRunner, run_with_retries
from query_catalog.validate import InvocationState


@pytest.fixture
def top_n_adapter():
    """20 USA order lines with distinct sales values and 10 from elsewhere."""
    adapter = DuckDBAdapter("top_n", {"path": ":memory:", "read_only": False})
    adapter.connect()
    create_sales_table(adapter.connection)
    rows = []
    for i in range(20):
        rows.append(
            make_sales_row(
                order_number=20000 + i,
                customer_index=0,
                quantity=10 + i,
                price_each=Decimal("100.00"),
                order_date=date(2004, 1, 1) + timedelta(days=i),
            )
        )
    for i in range(10):
        rows.append(
            make_sales_row(
                order_number=30000 + i,
                customer_index=1,
                quantity=90,
                price_each=Decimal("150.00"),
            )
        )
    insert_sales_rows(adapter.connection, rows)

    yield adapter

    adapter.disconnect()


def test_top_n_end_to_end(top_n_adapter, builtin_catalog):
    """Five USA lines, largest sales first, every expectation satisfied."""
    runner = QueryRunner(builtin_catalog, {"duckdb": top_n_adapter})

    report = runner.run("top-n-by-sales", "duckdb", {"country": "USA", "limit": 5})

    assert report.state == InvocationState.COMPLETED
    assert report.passed
    assert report.row_count == 5
    assert report.dialect == "duckdb"
    assert report.attempts == 1
    assert report.elapsed_ms >= 0
    assert report.result.column_values("COUNTRY") == ["USA"] * 5
    sales = report.result.column_values("SALES")
    assert sales == [Decimal("2900.00"), Decimal("2800.00"), Decimal("2700.00"),
                     Decimal("2600.00"), Decimal("2500.00")]


def test_limit_larger_than_matches_returns_all(top_n_adapter, builtin_catalog):
    runner = QueryRunner(builtin_catalog, {"duckdb": top_n_adapter})
    report = runner.run("top-n-by-sales", "duckdb", {"country": "USA", "limit": 50})
    assert report.row_count == 20
    assert report.passed


def test_unknown_parameter_never_reaches_adapter(spy_adapter_factory, builtin_catalog):
    spy = spy_adapter_factory()
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})

    with pytest.raises(UnknownParameterError):
        runner.run("top-n-by-sales", "duckdb", {"country": "USA", "limt": 5})

    assert spy.calls == []
    assert spy.connect_calls == 0


def test_unknown_query_and_dialect(spy_adapter_factory, builtin_catalog):
    spy = spy_adapter_factory()
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})

    with pytest.raises(NotFoundError):
        runner.run("no-such-query", "duckdb")
    with pytest.raises(UnsupportedDialectError, match="No adapter configured"):
        runner.run("top-n-by-sales", "postgres")
    assert spy.calls == []


def test_runner_never_retries(spy_adapter_factory, builtin_catalog):
    spy = spy_adapter_factory([BackendConnectionError("reset by peer")])
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})

    with pytest.raises(ConnectionError):
        runner.run("top-n-by-sales", "duckdb")
    assert len(spy.calls) == 1


def test_execution_error_propagates(spy_adapter_factory, builtin_catalog):
    spy = spy_adapter_factory([ExecutionError("syntax error", backend_message="near LIMIT")])
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})

    with pytest.raises(ExecutionError) as excinfo:
        runner.run("top-n-by-sales", "duckdb")
    assert excinfo.value.backend_message == "near LIMIT"


def test_default_timeout_passed_to_adapter(spy_adapter_factory, builtin_catalog):
    result = ResultSet.from_columns(["ORDERNUMBER", "COUNTRY", "SALES"], [])
    spy = spy_adapter_factory([result])
    runner = QueryRunner(builtin_catalog, {"duckdb": spy}, default_timeout=7.5)

    runner.run("top-n-by-sales", "duckdb")
    runner.run("top-n-by-sales", "duckdb", timeout=1.0)

    assert [timeout for _, timeout in spy.calls] == [7.5, 1.0]


def test_missing_result_column_is_structural(spy_adapter_factory, builtin_catalog):
    result = ResultSet.from_columns(["ORDERNUMBER"], [(1,)])
    spy = spy_adapter_factory([result])
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})

    with pytest.raises(SchemaMismatchError):
        runner.run("top-n-by-sales", "duckdb")


def test_retry_after_connection_error(spy_adapter_factory, builtin_catalog):
    """The caller's retry policy sees the connection error and tries again."""
    result = ResultSet.from_columns(["ORDERNUMBER", "COUNTRY", "SALES"], [(1, "USA", 10)])
    spy = spy_adapter_factory([BackendConnectionError("connection refused"), result])
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})
    delays = []

    report = run_with_retries(
        runner, "top-n-by-sales", "duckdb", {"country": "USA"}, attempts=3,
        backoff_seconds=0.25, sleep=delays.append,
    )

    assert report.passed
    assert report.attempts == 2
    assert len(spy.calls) == 2
    assert delays == [0.25]


def test_retry_gives_up_after_attempts(spy_adapter_factory, builtin_catalog):
    spy = spy_adapter_factory([BackendConnectionError("connection refused")])
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})
    delays = []

    with pytest.raises(BackendConnectionError):
        run_with_retries(
            runner, "top-n-by-sales", "duckdb", attempts=3, backoff_seconds=1.0,
            sleep=delays.append,
        )

    assert len(spy.calls) == 3
    assert delays == [1.0, 2.0]


def test_retry_does_not_repeat_input_errors(spy_adapter_factory, builtin_catalog):
    spy = spy_adapter_factory()
    runner = QueryRunner(builtin_catalog, {"duckdb": spy})
    delays = []

    with pytest.raises(UnknownParameterError):
        run_with_retries(runner, "top-n-by-sales", "duckdb", {"bogus": 1}, sleep=delays.append)
    assert delays == []


def test_retry_rejects_zero_attempts(spy_adapter_factory, builtin_catalog):
    runner = QueryRunner(builtin_catalog, {"duckdb": spy_adapter_factory()})
    with pytest.raises(ValueError):
        run_with_retries(runner, "top-n-by-sales", "duckdb", attempts=0)


def test_run_all_checks_builtin_catalog_on_demo_data(duckdb_adapter, builtin_catalog):
    """Every bundled duckdb query runs with its defaults and passes."""
    runner = QueryRunner(builtin_catalog, {"duckdb": duckdb_adapter})

    outcomes = runner.run_all("duckdb")

    assert len(outcomes) == len(builtin_catalog)
    for outcome in outcomes:
        assert outcome.error is None, f"{outcome.query_id}: {outcome.error}"
        assert outcome.report.passed, (
            f"{outcome.query_id}: {[a.detail for a in outcome.report.failed_assertions]}"
        )


def test_run_all_collects_errors_and_applies_overrides(spy_adapter_factory):
    catalog = Catalog.load(
        [
            {
                "id": "limited",
                "category": "limit",
                "intent": "Limited rows",
                "parameters": [{"name": "limit", "type": "integer", "default": 5}],
                "templates": {"duckdb": "SELECT ORDERNUMBER FROM sales_data_sample LIMIT :limit"},
                "expectations": [{"kind": "row_count", "max_param": "limit"}],
            },
            {
                "id": "postgres-only",
                "category": "projection",
                "intent": "Not runnable on duckdb",
                "templates": {"postgres": "SELECT 1"},
            },
            {
                "id": "broken",
                "category": "projection",
                "intent": "Expects a missing column",
                "templates": {"duckdb": "SELECT ORDERNUMBER FROM sales_data_sample"},
                "expectations": [{"kind": "not_null", "column": "SALES"}],
            },
        ]
    )
    result = ResultSet.from_columns(["ORDERNUMBER"], [(1,), (2,)])
    spy = spy_adapter_factory([result])
    runner = QueryRunner(catalog, {"duckdb": spy})

    outcomes = runner.run_all("duckdb", overrides={"limit": 1, "country": "USA"})

    assert [o.query_id for o in outcomes] == ["limited", "broken"]
    assert spy.calls[0][0].values == (1,)
    assert not outcomes[0].report.passed
    assert isinstance(outcomes[1].error, SchemaMismatchError)


def test_catalog_reload_builds_a_new_catalog(duckdb_adapter):
    first = load_catalog()
    runner = QueryRunner(first, {"duckdb": duckdb_adapter})
    runner.catalog = load_catalog()
    assert runner.catalog is not first
    assert runner.run("distinct-countries", "duckdb").passed
