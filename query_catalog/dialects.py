"""Registry of SQL dialects known to the catalog."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from .errors import UnsupportedDialectError


class ParamStyle(Enum):
    """Bind marker styles used by the supported drivers."""

    NUMERIC = "numeric"  # $1, $2 ... (PostgreSQL native)
    QMARK = "qmark"  # ?


@dataclass(frozen=True)
class Dialect:
    """A named SQL variant and how its driver expects bind markers.

    Attributes:
        name: Name used as the template key in query definitions
        param_style: Bind marker style for the dialect's driver
        sqlglot_dialect: sqlglot dialect used when classifying statements
    """

    name: str
    param_style: ParamStyle
    sqlglot_dialect: str

    def marker(self, position: int) -> str:
        """Return the bind marker for a 1-based parameter position."""
        if self.param_style == ParamStyle.NUMERIC:
            return f"${position}"
        return "?"

    @property
    def reuses_markers(self) -> bool:
        """True when a repeated placeholder may share one bound value."""
        return self.param_style == ParamStyle.NUMERIC


_DIALECTS: Dict[str, Dialect] = {}


def register_dialect(dialect: Dialect) -> Dialect:
    """Register a dialect so definitions may carry templates for it."""
    _DIALECTS[dialect.name] = dialect
    return dialect


def get_dialect(name: str) -> Dialect:
    """Look up a registered dialect.

    Raises:
        UnsupportedDialectError: If no dialect is registered under ``name``
    """
    dialect = _DIALECTS.get(name)
    if dialect is None:
        raise UnsupportedDialectError(
            f"Unknown dialect '{name}'. Registered dialects: {registered_dialects()}"
        )
    return dialect


def is_registered(name: str) -> bool:
    return name in _DIALECTS


def registered_dialects() -> List[str]:
    return sorted(_DIALECTS)


POSTGRES = register_dialect(Dialect("postgres", ParamStyle.NUMERIC, "postgres"))
DUCKDB = register_dialect(Dialect("duckdb", ParamStyle.QMARK, "duckdb"))
MSSQL = register_dialect(Dialect("mssql", ParamStyle.QMARK, "tsql"))
