"""DuckDB execution adapter."""

import logging
from typing import Any, Dict, List, Optional

import duckdb

from ..binder import BoundStatement
from ..errors import BackendConnectionError, ExecutionError, QueryCancelledError
from .base import AdapterCapability, ExecutionAdapter, ResultSet, deadline

logger = logging.getLogger(__name__)


class DuckDBAdapter(ExecutionAdapter):
    """DuckDB adapter. Each invocation runs on its own cursor."""

    dialect = "duckdb"

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize DuckDB adapter.

        Config should include:
            - path: Path to DuckDB database file (or :memory: for in-memory)
            - read_only: Whether to open in read-only mode
              (default: True for files, False for :memory:)
            - statement_timeout: Default per-statement deadline in seconds
        """
        super().__init__(name, config)
        self.connection = None
        self.db_path = config.get("path", ":memory:")
        self.read_only = config.get("read_only", self.db_path != ":memory:")

    def connect(self) -> None:
        """Establish connection to DuckDB."""
        logger.info(f"Connecting to DuckDB at '{self.db_path}'")
        try:
            self.connection = duckdb.connect(self.db_path, read_only=self.read_only)
        except duckdb.Error as e:
            logger.error(f"Failed to connect to DuckDB {self.name}: {e}")
            raise BackendConnectionError(f"DuckDB connection failed: {e}") from e
        self._connected = True
        logger.info(f"Successfully connected to DuckDB: {self.name}")

    def disconnect(self) -> None:
        """Close DuckDB connection."""
        if self.connection:
            self.connection.close()
            logger.info(f"Disconnected from DuckDB: {self.name}")
            self.connection = None
            self._connected = False

    def get_capabilities(self) -> List[AdapterCapability]:
        return [
            AdapterCapability.PAGINATION,
            AdapterCapability.EXPLAIN,
            AdapterCapability.CANCELLATION,
        ]

    def _execute(self, statement: BoundStatement, timeout: Optional[float]) -> ResultSet:
        """Execute on a private cursor and collect the Arrow result."""
        cursor = self.connection.cursor()
        try:
            with deadline(timeout, cursor.interrupt) as expired:
                try:
                    result = cursor.execute(statement.sql, self._parameters(statement))
                    table = result.to_arrow_table()
                except duckdb.Error as e:
                    raise self._translate_error(e, expired(), statement) from e
            return ResultSet.from_arrow(table)
        finally:
            cursor.close()

    def _explain(self, statement: BoundStatement) -> str:
        cursor = self.connection.cursor()
        try:
            try:
                rows = cursor.execute(
                    f"EXPLAIN {statement.sql}", self._parameters(statement)
                ).fetchall()
            except duckdb.Error as e:
                raise self._translate_error(e, False, statement) from e
            lines = []
            for row in rows:
                lines.append(row[1])
            return "\n".join(lines)
        finally:
            cursor.close()

    def _parameters(self, statement: BoundStatement) -> Optional[List[Any]]:
        if not statement.values:
            return None
        return list(statement.values)

    def _translate_error(self, error: duckdb.Error, expired: bool, statement: BoundStatement):
        """Map a driver error onto the catalog error taxonomy."""
        message = str(error)
        if expired or isinstance(error, duckdb.InterruptException):
            logger.warning(f"Statement {statement.query_id} cancelled on {self.name}")
            return QueryCancelledError(f"Query {statement.query_id} was cancelled: {message}")
        if isinstance(error, (duckdb.ConnectionException, duckdb.IOException)):
            logger.error(f"Connection failure on {self.name}: {message}")
            return BackendConnectionError(f"DuckDB connection failure: {message}")
        logger.error(f"Query execution failed on {self.name}: {message}")
        return ExecutionError(
            f"Query {statement.query_id} failed on {self.name}: {message}",
            backend_message=message,
        )
