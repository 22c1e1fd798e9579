"""Tests for execution adapters."""

import os
import threading
import time

import duckdb
import pyarrow as pa
import pytest

from query_catalog.binder import BoundStatement, ParameterBinder
from query_catalog.config import DataSourceConfig, ExecutorConfig
from query_catalog.datasources import (
    AdapterCapability,
    DuckDBAdapter,
    PostgreSQLAdapter,
    ResultSet,
    create_adapter,
    ensure_read_only,
)
from query_catalog.datasources.base import deadline
from query_catalog.dialects import ParamStyle
from query_catalog.errors import (
    BackendConnectionError,
    ExecutionError,
    QueryCancelledError,
    SchemaMismatchError,
    UnsupportedDialectError,
    WriteNotAllowedError,
)


def _statement(sql, values=(), dialect="duckdb", query_id="adhoc"):
    style = ParamStyle.NUMERIC if dialect == "postgres" else ParamStyle.QMARK
    return BoundStatement(
        query_id=query_id,
        dialect=dialect,
        sql=sql,
        values=tuple(values),
        param_style=style,
        parameters={},
    )


def test_result_set_accessors():
    result = ResultSet.from_columns(["COUNTRY", "SALES"], [("USA", 10), ("France", 5)])
    assert result.columns == ["COUNTRY", "SALES"]
    assert result.row_count == 2
    assert len(result) == 2
    assert result.rows == [{"COUNTRY": "USA", "SALES": 10}, {"COUNTRY": "France", "SALES": 5}]
    assert result.column_values("sales") == [10, 5]
    assert result.resolve_column("country") == "COUNTRY"
    with pytest.raises(SchemaMismatchError):
        result.column_values("MISSING")


def test_result_set_from_arrow():
    table = pa.table({"ordernumber": [10100, 10101]})
    result = ResultSet.from_arrow(table)
    assert result.column_values("ORDERNUMBER") == [10100, 10101]


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 1",
        "SELECT * FROM sales_data_sample WHERE COUNTRY = ? LIMIT ?",
        "WITH t AS (SELECT 1 AS x) SELECT x FROM t",
        "SELECT a FROM t UNION ALL SELECT b FROM u",
    ],
)
def test_read_only_guard_accepts_queries(sql):
    ensure_read_only(sql, "duckdb")


@pytest.mark.parametrize(
    "sql",
    [
        "DELETE FROM sales_data_sample",
        "UPDATE sales_data_sample SET SALES = 0",
        "INSERT INTO sales_data_sample (ORDERNUMBER) VALUES (1)",
        "DROP TABLE sales_data_sample",
        "CREATE TABLE copy AS SELECT * FROM sales_data_sample",
        "SELECT 1; DELETE FROM sales_data_sample",
        "SELECT * INTO backup FROM sales_data_sample",
        "",
    ],
)
def test_read_only_guard_refuses_writes(sql):
    with pytest.raises(WriteNotAllowedError):
        ensure_read_only(sql, "postgres")


def test_postgres_numbered_markers_pass_guard():
    ensure_read_only(
        "SELECT ORDERNUMBER FROM sales_data_sample WHERE COUNTRY = $1 LIMIT $2", "postgres"
    )


def test_duckdb_connection(duckdb_adapter):
    assert duckdb_adapter.is_connected()
    assert duckdb_adapter.connection is not None
    assert duckdb_adapter.supports_capability(AdapterCapability.CANCELLATION)
    assert duckdb_adapter.supports_pagination()


def test_duckdb_execute_bound_catalog_query(duckdb_adapter, builtin_catalog):
    definition = builtin_catalog.get("top-n-by-sales")
    statement = ParameterBinder().bind(definition, "duckdb", {"country": "USA", "limit": 3})

    result = duckdb_adapter.execute(statement)

    assert result.columns == ["ORDERNUMBER", "CUSTOMERNAME", "COUNTRY", "SALES"]
    assert result.row_count == 3
    assert set(result.column_values("COUNTRY")) == {"USA"}
    sales = result.column_values("SALES")
    assert sales == sorted(sales, reverse=True)


def test_duckdb_empty_result_keeps_columns(empty_duckdb_adapter):
    statement = _statement("SELECT ORDERNUMBER, SALES FROM sales_data_sample")
    result = empty_duckdb_adapter.execute(statement)
    assert result.row_count == 0
    assert result.columns == ["ORDERNUMBER", "SALES"]


def test_duckdb_refuses_write_before_touching_data(duckdb_adapter):
    before = duckdb_adapter.connection.execute("SELECT COUNT(*) FROM sales_data_sample").fetchone()
    with pytest.raises(WriteNotAllowedError):
        duckdb_adapter.execute(_statement("DELETE FROM sales_data_sample"))
    after = duckdb_adapter.connection.execute("SELECT COUNT(*) FROM sales_data_sample").fetchone()
    assert before == after


def test_duckdb_execution_error_keeps_backend_message(duckdb_adapter):
    with pytest.raises(ExecutionError) as excinfo:
        duckdb_adapter.execute(_statement("SELECT NO_SUCH_COLUMN FROM sales_data_sample"))
    assert excinfo.value.backend_message
    assert "NO_SUCH_COLUMN" in excinfo.value.backend_message.upper()
    assert excinfo.value.__cause__ is not None


def test_adapter_rejects_foreign_dialect(duckdb_adapter):
    with pytest.raises(UnsupportedDialectError):
        duckdb_adapter.execute(_statement("SELECT 1", dialect="postgres"))


def test_duckdb_deadline_cancels_long_query(duckdb_adapter):
    """A statement outliving its deadline is interrupted, not left running."""
    statement = _statement(
        "SELECT COUNT(*) FROM range(100000000) AS a(x), range(100000) AS b(y) WHERE a.x + b.y = -1"
    )
    with pytest.raises(QueryCancelledError):
        duckdb_adapter.execute(statement, timeout=0.2)

    # The connection remains usable afterwards.
    result = duckdb_adapter.execute(_statement("SELECT COUNT(*) AS N FROM sales_data_sample"))
    assert result.column_values("N") == [48]


def test_duckdb_explain(duckdb_adapter):
    plan = duckdb_adapter.explain(_statement("SELECT * FROM sales_data_sample WHERE SALES > 1000"))
    assert plan


def test_duckdb_context_manager():
    with DuckDBAdapter("ctx", {"path": ":memory:", "read_only": False}) as adapter:
        assert adapter.is_connected()
        result = adapter.execute(_statement("SELECT 42 AS ANSWER"))
        assert result.column_values("ANSWER") == [42]
    assert not adapter.is_connected()


def test_duckdb_connects_lazily():
    adapter = DuckDBAdapter("lazy", {"path": ":memory:", "read_only": False})
    assert not adapter.is_connected()
    adapter.execute(_statement("SELECT 1 AS ONE"))
    assert adapter.is_connected()
    adapter.disconnect()


class CountingDuckDBAdapter(DuckDBAdapter):
    def __init__(self, name, config):
        super().__init__(name, config)
        self.connect_calls = 0

    def connect(self):
        self.connect_calls += 1
        time.sleep(0.05)
        super().connect()


def test_concurrent_first_calls_connect_once(tmp_path):
    path = str(tmp_path / "sales.duckdb")
    with duckdb.connect(path) as conn:
        conn.execute("CREATE TABLE sales_data_sample AS SELECT range AS ORDERNUMBER FROM range(10)")
    adapter = CountingDuckDBAdapter("shared", {"path": path, "read_only": True})
    barrier = threading.Barrier(8)
    counts = []
    errors = []

    def worker():
        barrier.wait()
        try:
            result = adapter.execute(_statement("SELECT COUNT(*) AS N FROM sales_data_sample"))
            counts.append(result.column_values("N")[0])
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    adapter.disconnect()

    assert errors == []
    assert counts == [10] * 8
    assert adapter.connect_calls == 1


def test_deadline_waits_for_running_abort():
    aborted = threading.Event()

    def slow_abort():
        time.sleep(0.2)
        aborted.set()

    with deadline(0.01, slow_abort) as expired:
        time.sleep(0.05)
    assert expired()
    assert aborted.is_set()


def test_deadline_not_reached_never_aborts():
    calls = []
    with deadline(5, lambda: calls.append(1)) as expired:
        pass
    assert not expired()
    assert calls == []


def test_duckdb_missing_read_only_file_is_connection_error(tmp_path):
    adapter = DuckDBAdapter("missing", {"path": str(tmp_path / "absent.duckdb"), "read_only": True})
    with pytest.raises(BackendConnectionError):
        adapter.connect()


def test_postgres_unreachable_is_connection_error():
    """An unreachable server surfaces as a retriable connection error."""
    adapter = PostgreSQLAdapter(
        "unreachable",
        {"dsn": "host=127.0.0.1 port=1 dbname=none user=none connect_timeout=1", "connect_timeout": 1},
    )
    with pytest.raises(BackendConnectionError) as excinfo:
        adapter.connect()
    assert excinfo.value.retriable
    assert isinstance(excinfo.value, ConnectionError)
    assert not adapter.is_connected()


def test_postgres_missing_dsn_env(monkeypatch):
    monkeypatch.delenv("QCAT_TEST_UNSET_DSN", raising=False)
    adapter = PostgreSQLAdapter("env", {"dsn_env": "QCAT_TEST_UNSET_DSN"})
    with pytest.raises(BackendConnectionError, match="QCAT_TEST_UNSET_DSN"):
        adapter.connect()


def test_create_adapter_applies_executor_defaults():
    ds_config = DataSourceConfig(
        name="duck", type="duckdb", config={"path": ":memory:", "statement_timeout": 3}
    )
    executor = ExecutorConfig(statement_timeout_seconds=30, batch_size=500)

    adapter = create_adapter(ds_config, executor)

    assert isinstance(adapter, DuckDBAdapter)
    assert adapter.default_timeout == 3
    assert adapter.config["batch_size"] == 500

    pg = create_adapter(DataSourceConfig(name="pg", type="postgresql", config={}), executor)
    assert isinstance(pg, PostgreSQLAdapter)
    assert pg.default_timeout == 30


def test_create_adapter_unknown_type():
    with pytest.raises(ValueError, match="Unsupported data source type"):
        create_adapter(DataSourceConfig(name="x", type="oracle", config={}))


@pytest.mark.skipif(
    not os.environ.get("QCAT_TEST_POSTGRES_DSN"),
    reason="QCAT_TEST_POSTGRES_DSN not set",
)
def test_postgres_server_side_parameters():
    """Integration: numbered markers bind on a real server, writes stay refused."""
    adapter = PostgreSQLAdapter("pg", {"dsn": os.environ["QCAT_TEST_POSTGRES_DSN"]})
    with adapter:
        result = adapter.execute(
            _statement("SELECT $1::int + 1 AS next_value, $2::text AS label", [41, "x'y"], "postgres")
        )
        assert result.column_values("next_value") == [42]
        assert result.column_values("label") == ["x'y"]

        with pytest.raises(WriteNotAllowedError):
            adapter.execute(_statement("DROP TABLE IF EXISTS sales_data_sample", dialect="postgres"))

        with pytest.raises(ExecutionError) as excinfo:
            adapter.execute(_statement("SELECT * FROM no_such_table_qcat", dialect="postgres"))
        assert "no_such_table_qcat" in excinfo.value.backend_message
