"""Base execution adapter interface."""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import pyarrow as pa
import sqlglot
from sqlglot import exp
from sqlglot import errors as sqlglot_errors

from ..binder import BoundStatement
from ..dialects import get_dialect
from ..errors import (
    ExecutionError,
    SchemaMismatchError,
    UnsupportedDialectError,
    WriteNotAllowedError,
)

logger = logging.getLogger(__name__)


class AdapterCapability(Enum):
    """Optional capabilities an adapter may support."""

    PAGINATION = "pagination"
    EXPLAIN = "explain"
    CANCELLATION = "cancellation"


@dataclass(frozen=True)
class ResultSet:
    """Read-only query result backed by an Arrow table."""

    table: pa.Table

    @classmethod
    def from_arrow(cls, table: pa.Table) -> "ResultSet":
        return cls(table=table)

    @classmethod
    def from_columns(cls, columns: List[str], rows: Sequence[Sequence[Any]]) -> "ResultSet":
        """Build a result from column names and row tuples."""
        arrays = []
        for i in range(len(columns)):
            values = []
            for row in rows:
                values.append(row[i])
            arrays.append(pa.array(values))
        return cls(table=pa.Table.from_arrays(arrays, names=list(columns)))

    @property
    def columns(self) -> List[str]:
        return list(self.table.column_names)

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return self.table.to_pylist()

    @property
    def row_count(self) -> int:
        return self.table.num_rows

    def resolve_column(self, name: str) -> Optional[str]:
        """Return the result's spelling of ``name`` (case-insensitive), or None."""
        if name in self.table.column_names:
            return name
        for column in self.table.column_names:
            if column.lower() == name.lower():
                return column
        return None

    def column_values(self, name: str) -> List[Any]:
        """Values of one column in row order.

        Raises:
            SchemaMismatchError: If the column is not in the result
        """
        column = self.resolve_column(name)
        if column is None:
            raise SchemaMismatchError(
                f"Column '{name}' not found in result columns {self.columns}"
            )
        return self.table.column(column).to_pylist()

    def __len__(self) -> int:
        return self.table.num_rows


_WRITE_NODES = (
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Merge,
    exp.Create,
    exp.Drop,
    exp.Into,
)


def ensure_read_only(sql: str, sqlglot_dialect: str) -> None:
    """Refuse anything other than a single read-only query.

    Raises:
        WriteNotAllowedError: If ``sql`` is not exactly one SELECT-shaped
            statement, contains data-modifying clauses, or cannot be parsed
    """
    try:
        parsed = sqlglot.parse(sql, read=sqlglot_dialect)
    except sqlglot_errors.SqlglotError as e:
        raise WriteNotAllowedError(
            "Statement could not be verified as read-only", backend_message=str(e)
        ) from e

    statements = [statement for statement in parsed if statement is not None]
    if len(statements) != 1:
        raise WriteNotAllowedError(
            f"Expected exactly one statement, found {len(statements)}"
        )
    statement = statements[0]
    if not isinstance(statement, exp.Query):
        raise WriteNotAllowedError(
            f"Only SELECT-shaped statements may run, got {statement.key.upper()}"
        )
    node = statement.find(*_WRITE_NODES)
    if node is not None:
        raise WriteNotAllowedError(
            f"Statement contains a data-modifying {node.key.upper()} clause"
        )


@contextmanager
def deadline(timeout: Optional[float], abort: Callable[[], None]) -> Iterator[Callable[[], bool]]:
    """Call ``abort`` from a timer thread if the block outlives ``timeout``.

    Yields:
        A callable reporting whether the deadline fired
    """
    fired = threading.Event()
    if timeout is None:
        yield fired.is_set
        return

    def _fire() -> None:
        fired.set()
        try:
            abort()
        except Exception as e:
            logger.warning(f"Failed to abort statement after {timeout}s deadline: {e}")

    timer = threading.Timer(timeout, _fire)
    timer.daemon = True
    timer.start()
    try:
        yield fired.is_set
    finally:
        timer.cancel()
        # abort must not outlive the block that owns the connection
        timer.join()


class ExecutionAdapter(ABC):
    """Abstract base class for backend adapters."""

    dialect: str = ""

    def __init__(self, name: str, config: Dict[str, Any]):
        """Initialize adapter.

        Args:
            name: Unique name for this adapter
            config: Configuration dictionary
        """
        self.name = name
        self.config = config
        self.connection = None
        self._connected = False
        self._connect_lock = threading.Lock()
        self.default_timeout: Optional[float] = config.get("statement_timeout")

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the backend.

        Raises:
            BackendConnectionError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Release all connections."""
        pass

    @abstractmethod
    def get_capabilities(self) -> List[AdapterCapability]:
        """Return list of capabilities supported by this adapter."""
        pass

    @abstractmethod
    def _execute(self, statement: BoundStatement, timeout: Optional[float]) -> ResultSet:
        """Run a statement that already passed the read-only guard."""
        pass

    def _explain(self, statement: BoundStatement) -> str:
        raise ExecutionError(f"{self.__class__.__name__} does not support EXPLAIN")

    def execute(self, statement: BoundStatement, timeout: Optional[float] = None) -> ResultSet:
        """Execute a bound statement and return its full result.

        Args:
            statement: Statement produced by the parameter binder
            timeout: Deadline in seconds; falls back to the adapter default

        Returns:
            Result set (empty, never None, when no rows match)

        Raises:
            UnsupportedDialectError: If the statement targets another dialect
            WriteNotAllowedError: If the statement is not a read-only query
            BackendConnectionError: On transient connection failures
            ExecutionError: If the backend rejects the statement
            QueryCancelledError: If the deadline expired
        """
        self._check_statement(statement)
        self.ensure_connected()
        if timeout is None:
            timeout = self.default_timeout
        logger.debug(f"Executing {statement.query_id} on {self.name}: {statement.sql[:100]}...")
        return self._execute(statement, timeout)

    def explain(self, statement: BoundStatement) -> str:
        """Return the backend's plan text for a bound statement."""
        if not self.supports_capability(AdapterCapability.EXPLAIN):
            raise ExecutionError(f"{self.__class__.__name__} does not support EXPLAIN")
        self._check_statement(statement)
        self.ensure_connected()
        return self._explain(statement)

    def _check_statement(self, statement: BoundStatement) -> None:
        if statement.dialect != self.dialect:
            raise UnsupportedDialectError(
                f"Adapter {self.name} runs '{self.dialect}' statements, "
                f"got '{statement.dialect}'"
            )
        ensure_read_only(statement.sql, get_dialect(statement.dialect).sqlglot_dialect)

    def supports_pagination(self) -> bool:
        return self.supports_capability(AdapterCapability.PAGINATION)

    def supports_capability(self, capability: AdapterCapability) -> bool:
        """Check if adapter supports a capability.

        Args:
            capability: Capability to check

        Returns:
            True if supported, False otherwise
        """
        return capability in self.get_capabilities()

    def is_connected(self) -> bool:
        return self._connected

    def ensure_connected(self) -> None:
        """Ensure adapter is connected.

        Raises:
            BackendConnectionError: If connection cannot be established
        """
        if self.is_connected():
            return
        with self._connect_lock:
            if not self.is_connected():
                self.connect()
                self._connected = True

    def __enter__(self):
        """Context manager entry."""
        self.ensure_connected()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
        self._connected = False
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, dialect={self.dialect})"
