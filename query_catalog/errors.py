"""Exception hierarchy for the query catalog."""

from typing import Optional


class QueryCatalogError(Exception):
    """Base class for all query catalog errors."""

    retriable = False


class CatalogLoadError(QueryCatalogError):
    """Raised when catalog sources are malformed or inconsistent."""

    pass


class QueryInputError(QueryCatalogError):
    """Caller supplied an id, dialect or parameter set that cannot be used."""

    pass


class NotFoundError(QueryInputError):
    """Raised when a query id is not present in the catalog."""

    def __init__(self, query_id: str):
        super().__init__(f"Query not found: {query_id}")
        self.query_id = query_id


class UnsupportedDialectError(QueryInputError):
    """Raised when a definition or adapter has no support for a dialect."""

    pass


class MissingParameterError(QueryInputError):
    """Raised when a required parameter has neither a value nor a default."""

    def __init__(self, query_id: str, name: str):
        super().__init__(f"Missing required parameter '{name}' for query {query_id}")
        self.query_id = query_id
        self.name = name


class TypeMismatchError(QueryInputError):
    """Raised when a parameter value does not match its declared type."""

    def __init__(self, name: str, expected: str, value: object):
        super().__init__(
            f"Parameter '{name}' expects {expected}, got {type(value).__name__}: {value!r}"
        )
        self.name = name
        self.expected = expected
        self.value = value


class UnknownParameterError(QueryInputError):
    """Raised when values contain keys the definition does not declare."""

    def __init__(self, query_id: str, names):
        names = sorted(names)
        super().__init__(f"Unknown parameter(s) for query {query_id}: {', '.join(names)}")
        self.query_id = query_id
        self.names = names


class BackendConnectionError(QueryCatalogError, ConnectionError):
    """Transient failure reaching the backend. Callers may retry."""

    retriable = True


class ExecutionError(QueryCatalogError):
    """Backend rejected or failed the statement."""

    def __init__(self, message: str, backend_message: Optional[str] = None):
        super().__init__(message)
        self.backend_message = backend_message


class WriteNotAllowedError(ExecutionError):
    """Raised when a statement is not a single read-only query."""

    pass


class SchemaMismatchError(QueryCatalogError):
    """Raised when a result lacks a column an expectation refers to."""

    pass


class QueryCancelledError(QueryCatalogError):
    """Raised when an in-flight statement was aborted by its deadline."""

    pass
