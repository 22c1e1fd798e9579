"""PostgreSQL execution adapter."""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import psycopg
from psycopg import errors as pg_errors
from psycopg.conninfo import make_conninfo
from psycopg_pool import ConnectionPool, PoolTimeout

from ..binder import BoundStatement
from ..errors import BackendConnectionError, ExecutionError, QueryCancelledError
from .base import AdapterCapability, ExecutionAdapter, ResultSet, deadline

logger = logging.getLogger(__name__)


class PostgreSQLAdapter(ExecutionAdapter):
    """PostgreSQL adapter with connection pooling and native ``$n`` parameters."""

    dialect = "postgres"

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize PostgreSQL adapter.

        Config should include either:
            - dsn: libpq connection string
            - dsn_env: Name of an environment variable holding the connection string
        or discrete settings:
            - host, port (default: 5432), database, user
            - password_env: Name of an environment variable holding the password
        Optional:
            - min_connections: Minimum connections in pool (default: 1)
            - max_connections: Maximum connections in pool (default: 5)
            - connect_timeout: Seconds to wait for a pooled connection (default: 10)
            - batch_size: Rows fetched per round trip (default: 10000)
            - statement_timeout: Default per-statement deadline in seconds
        """
        super().__init__(name, config)
        self._pool: Optional[ConnectionPool] = None
        self._min_connections = config.get("min_connections", 1)
        self._max_connections = config.get("max_connections", 5)
        self._connect_timeout = float(config.get("connect_timeout", 10.0))
        self._batch_size = config.get("batch_size", 10000)

    def _conninfo(self) -> str:
        """Build the connection string from the caller's environment."""
        if self.config.get("dsn"):
            return self.config["dsn"]
        dsn_env = self.config.get("dsn_env")
        if dsn_env:
            dsn = os.environ.get(dsn_env)
            if not dsn:
                raise BackendConnectionError(
                    f"Environment variable {dsn_env} is not set for data source {self.name}"
                )
            return dsn

        params = {
            "host": self.config.get("host"),
            "port": self.config.get("port", 5432),
            "dbname": self.config.get("database"),
            "user": self.config.get("user"),
        }
        password_env = self.config.get("password_env")
        if password_env:
            params["password"] = os.environ.get(password_env)
        return make_conninfo(**{k: v for k, v in params.items() if v is not None})

    def connect(self) -> None:
        """Open the connection pool and wait for its first connection."""
        conninfo = self._conninfo()
        logger.info(f"Connecting to PostgreSQL data source {self.name}")
        self._pool = ConnectionPool(
            conninfo,
            min_size=self._min_connections,
            max_size=self._max_connections,
            open=False,
            configure=self._configure_connection,
            name=self.name,
        )
        try:
            self._pool.open(wait=True, timeout=self._connect_timeout)
        except PoolTimeout as e:
            logger.error(f"Failed to connect to PostgreSQL {self.name}: {e}")
            self._pool.close()
            self._pool = None
            raise BackendConnectionError(f"PostgreSQL connection failed: {e}") from e
        self._connected = True
        logger.info(f"Successfully connected to PostgreSQL: {self.name}")

    def disconnect(self) -> None:
        """Close all connections in the pool."""
        if self._pool:
            self._pool.close()
            logger.info(f"Disconnected from PostgreSQL: {self.name}")
            self._pool = None
            self._connected = False

    @staticmethod
    def _configure_connection(conn: psycopg.Connection) -> None:
        """Pooled sessions are read-only."""
        conn.read_only = True

    def _get_connection(self) -> psycopg.Connection:
        """Get exclusive use of a pooled connection."""
        if not self._pool:
            raise BackendConnectionError(f"Not connected to {self.name}")
        try:
            return self._pool.getconn(timeout=self._connect_timeout)
        except PoolTimeout as e:
            raise BackendConnectionError(
                f"No PostgreSQL connection available for {self.name}: {e}"
            ) from e

    def _return_connection(self, conn: psycopg.Connection) -> None:
        """End the read transaction and return the connection to the pool."""
        if not conn.closed:
            try:
                conn.rollback()
            except psycopg.Error as e:
                logger.warning(f"Rollback failed on {self.name}, pool will discard connection: {e}")
        if self._pool:
            self._pool.putconn(conn)

    def get_capabilities(self) -> List[AdapterCapability]:
        return [
            AdapterCapability.PAGINATION,
            AdapterCapability.EXPLAIN,
            AdapterCapability.CANCELLATION,
        ]

    def _execute(self, statement: BoundStatement, timeout: Optional[float]) -> ResultSet:
        """Execute with server-side parameters, aborting at the deadline."""
        conn = self._get_connection()
        try:
            with deadline(timeout, conn.cancel_safe) as expired:
                try:
                    columns, rows = self._run(conn, statement.sql, statement.values)
                except psycopg.Error as e:
                    raise self._translate_error(e, expired(), statement) from e
            return ResultSet.from_columns(columns, rows)
        finally:
            self._return_connection(conn)

    def _run(
        self, conn: psycopg.Connection, sql: str, values: Tuple[Any, ...]
    ) -> Tuple[List[str], List[tuple]]:
        with psycopg.RawCursor(conn) as cursor:
            cursor.execute(sql, list(values))
            if cursor.description is None:
                return [], []
            columns = self._extract_column_names(cursor.description)
            rows: List[tuple] = []
            while True:
                batch = cursor.fetchmany(self._batch_size)
                if not batch:
                    break
                rows.extend(batch)
            return columns, rows

    def _explain(self, statement: BoundStatement) -> str:
        conn = self._get_connection()
        try:
            try:
                _, rows = self._run(conn, f"EXPLAIN {statement.sql}", statement.values)
            except psycopg.Error as e:
                raise self._translate_error(e, False, statement) from e
            lines = []
            for row in rows:
                lines.append(row[0])
            return "\n".join(lines)
        finally:
            self._return_connection(conn)

    def _translate_error(self, error: psycopg.Error, expired: bool, statement: BoundStatement):
        """Map a driver error onto the catalog error taxonomy."""
        message = _backend_message(error)
        if expired or isinstance(error, pg_errors.QueryCanceled):
            logger.warning(f"Statement {statement.query_id} cancelled on {self.name}")
            return QueryCancelledError(f"Query {statement.query_id} was cancelled: {message}")
        if isinstance(error, psycopg.OperationalError):
            logger.error(f"Connection failure on {self.name}: {message}")
            return BackendConnectionError(f"PostgreSQL connection failure: {message}")
        logger.error(f"Query execution failed on {self.name}: {message}")
        return ExecutionError(
            f"Query {statement.query_id} failed on {self.name}: {message}",
            backend_message=message,
        )

    def _extract_column_names(self, description) -> List[str]:
        """Extract column names from cursor description."""
        columns = []
        for desc in description:
            columns.append(desc.name)
        return columns


def _backend_message(error: psycopg.Error) -> str:
    diag = getattr(error, "diag", None)
    if diag is not None and diag.message_primary:
        return diag.message_primary
    return str(error)
