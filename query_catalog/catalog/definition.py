"""Query definition records.

A ``QueryDefinition`` is the unit of the catalog: one example query with its
intent, typed parameters, a SQL template per dialect, free-text edge case
notes and machine-checkable expectations.

Templates use named placeholders written ``:name``. The scanner in this
module skips string literals, quoted identifiers and comments, and does not
mistake PostgreSQL ``::`` casts for placeholders.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..dialects import is_registered, registered_dialects
from ..errors import CatalogLoadError, TypeMismatchError


class Category(Enum):
    """Query pattern categories."""

    PROJECTION = "projection"
    FILTER = "filter"
    SORT = "sort"
    LIMIT = "limit"
    COMBINED = "combined"


class ParameterType(Enum):
    """Semantic parameter types."""

    INTEGER = "integer"
    DECIMAL = "decimal"
    STRING = "string"
    DATE = "date"
    ENUM = "enum"


class ExpectationKind(Enum):
    """Kinds of machine-checkable result expectations."""

    ROW_COUNT = "row_count"
    NOT_NULL = "not_null"
    HAS_NULL = "has_null"
    ORDERED = "ordered"
    EQUALS = "equals"
    COLUMNS = "columns"


_SQL_TOKEN = re.compile(
    r"""
    '(?:[^']|'')*'
    | "(?:[^"]|"")*"
    | --[^\n]*
    | /\*.*?\*/
    | (?<![:\w]):(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE | re.DOTALL,
)

_INTEGER_TEXT = re.compile(r"[+-]?\d+")


@dataclass(frozen=True)
class Placeholder:
    """A named placeholder occurrence inside a SQL template."""

    name: str
    start: int
    end: int


def find_placeholders(sql: str) -> List[Placeholder]:
    """Return placeholder occurrences in ``sql`` in textual order."""
    found = []
    for match in _SQL_TOKEN.finditer(sql):
        name = match.group("name")
        if name is not None:
            found.append(Placeholder(name, match.start(), match.end()))
    return found


@dataclass(frozen=True)
class Parameter:
    """A declared query parameter."""

    name: str
    type: ParameterType
    required: bool = True
    default: Any = None
    choices: Tuple[str, ...] = ()
    description: str = ""

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def coerce(self, value: Any) -> Any:
        """Check ``value`` against the declared type and normalize it.

        Args:
            value: Caller-supplied value (native type or text)

        Returns:
            The value converted to the declared Python type

        Raises:
            TypeMismatchError: If the value does not fit the declared type
        """
        if self.type == ParameterType.INTEGER:
            return self._coerce_integer(value)
        if self.type == ParameterType.DECIMAL:
            return self._coerce_decimal(value)
        if self.type == ParameterType.DATE:
            return self._coerce_date(value)
        if self.type == ParameterType.ENUM:
            if isinstance(value, str) and value in self.choices:
                return value
            raise TypeMismatchError(self.name, f"one of {list(self.choices)}", value)
        if isinstance(value, str):
            return value
        raise TypeMismatchError(self.name, "string", value)

    def _coerce_integer(self, value: Any) -> int:
        if isinstance(value, bool):
            raise TypeMismatchError(self.name, "integer", value)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and _INTEGER_TEXT.fullmatch(value.strip()):
            return int(value.strip())
        raise TypeMismatchError(self.name, "integer", value)

    def _coerce_decimal(self, value: Any) -> Decimal:
        if isinstance(value, bool):
            raise TypeMismatchError(self.name, "decimal", value)
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, float)):
            result = Decimal(str(value))
        elif isinstance(value, str):
            try:
                result = Decimal(value.strip())
            except InvalidOperation:
                raise TypeMismatchError(self.name, "decimal", value) from None
        else:
            raise TypeMismatchError(self.name, "decimal", value)
        if not result.is_finite():
            raise TypeMismatchError(self.name, "finite decimal", value)
        return result

    def _coerce_date(self, value: Any) -> date:
        if isinstance(value, datetime):
            raise TypeMismatchError(self.name, "date", value)
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                raise TypeMismatchError(self.name, "ISO-8601 date", value) from None
        raise TypeMismatchError(self.name, "date", value)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
        }
        if self.has_default:
            record["default"] = _plain_value(self.default)
        if self.choices:
            record["choices"] = list(self.choices)
        if self.description:
            record["description"] = self.description
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Parameter":
        parameter = cls(
            name=record["name"],
            type=ParameterType(record.get("type", "string")),
            required=bool(record.get("required", True)),
            choices=tuple(record.get("choices", ())),
            description=record.get("description", ""),
        )
        default = record.get("default")
        if default is None:
            return parameter
        return cls(
            name=parameter.name,
            type=parameter.type,
            required=parameter.required,
            default=parameter.coerce(default),
            choices=parameter.choices,
            description=parameter.description,
        )


@dataclass(frozen=True)
class Expectation:
    """A machine-checkable assertion about a query result."""

    kind: ExpectationKind
    column: Optional[str] = None
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    maximum_param: Optional[str] = None
    direction: str = "asc"
    value: Any = None
    value_param: Optional[str] = None
    columns: Tuple[str, ...] = ()
    case_insensitive: bool = False

    def referenced_parameters(self) -> List[str]:
        names = []
        if self.maximum_param:
            names.append(self.maximum_param)
        if self.value_param:
            names.append(self.value_param)
        return names

    def describe(self) -> str:
        """One-line human description used in reports."""
        kind = self.kind
        if kind == ExpectationKind.ROW_COUNT:
            bounds = []
            if self.minimum is not None:
                bounds.append(f">= {self.minimum}")
            if self.maximum is not None:
                bounds.append(f"<= {self.maximum}")
            if self.maximum_param:
                bounds.append(f"<= :{self.maximum_param}")
            return f"row count {' and '.join(bounds)}"
        if kind == ExpectationKind.NOT_NULL:
            return f"{self.column} contains no NULL"
        if kind == ExpectationKind.HAS_NULL:
            return f"{self.column} contains at least one NULL"
        if kind == ExpectationKind.ORDERED:
            if self.case_insensitive:
                return f"{self.column} ordered {self.direction} ignoring case"
            return f"{self.column} ordered {self.direction}"
        if kind == ExpectationKind.EQUALS:
            target = f":{self.value_param}" if self.value_param else repr(self.value)
            return f"{self.column} = {target} on every row"
        return f"result has columns {', '.join(self.columns)}"

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"kind": self.kind.value}
        if self.column is not None:
            record["column"] = self.column
        if self.minimum is not None:
            record["min"] = self.minimum
        if self.maximum is not None:
            record["max"] = self.maximum
        if self.maximum_param is not None:
            record["max_param"] = self.maximum_param
        if self.kind == ExpectationKind.ORDERED:
            record["direction"] = self.direction
            if self.case_insensitive:
                record["case_insensitive"] = True
        if self.kind == ExpectationKind.EQUALS and self.value_param is None:
            record["value"] = _plain_value(self.value)
        if self.value_param is not None:
            record["value_param"] = self.value_param
        if self.columns:
            record["columns"] = list(self.columns)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Expectation":
        expectation = cls(
            kind=ExpectationKind(record["kind"]),
            column=record.get("column"),
            minimum=record.get("min"),
            maximum=record.get("max"),
            maximum_param=record.get("max_param"),
            direction=str(record.get("direction", "asc")).lower(),
            value=record.get("value"),
            value_param=record.get("value_param"),
            columns=tuple(record.get("columns", ())),
            case_insensitive=bool(record.get("case_insensitive", False)),
        )
        expectation.check_shape()
        return expectation

    def check_shape(self) -> None:
        """Raise ``ValueError`` when required attributes for the kind are absent."""
        kind = self.kind
        if kind == ExpectationKind.ROW_COUNT:
            if self.minimum is None and self.maximum is None and self.maximum_param is None:
                raise ValueError("row_count expectation needs min, max or max_param")
            for label, bound in (("min", self.minimum), ("max", self.maximum)):
                if bound is not None and (isinstance(bound, bool) or not isinstance(bound, int)):
                    raise ValueError(f"row_count {label} must be an integer, got {bound!r}")
        elif kind == ExpectationKind.COLUMNS:
            if not self.columns:
                raise ValueError("columns expectation needs a non-empty column list")
        elif not self.column:
            raise ValueError(f"{kind.value} expectation needs a column")
        if kind == ExpectationKind.ORDERED and self.direction not in ("asc", "desc"):
            raise ValueError(f"invalid ordering direction '{self.direction}'")
        if kind == ExpectationKind.EQUALS and self.value is None and self.value_param is None:
            raise ValueError("equals expectation needs value or value_param")


@dataclass(frozen=True)
class QueryDefinition:
    """One catalog entry. Immutable once constructed."""

    id: str
    category: Category
    intent: str
    templates: Mapping[str, str]
    parameters: Tuple[Parameter, ...] = ()
    edge_cases: Tuple[str, ...] = ()
    expectations: Tuple[Expectation, ...] = ()
    deterministic: bool = True

    def __post_init__(self):
        object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "edge_cases", tuple(self.edge_cases))
        object.__setattr__(self, "expectations", tuple(self.expectations))
        self._check_invariants()

    @property
    def dialects(self) -> List[str]:
        return list(self.templates)

    def parameter(self, name: str) -> Optional[Parameter]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def placeholders(self, dialect: str) -> List[str]:
        """Distinct placeholder names used by one dialect, in first-use order."""
        names: List[str] = []
        for placeholder in find_placeholders(self.templates[dialect]):
            if placeholder.name not in names:
                names.append(placeholder.name)
        return names

    def _check_invariants(self) -> None:
        problems = self._collect_problems()
        if problems:
            raise CatalogLoadError(f"Invalid query definition '{self.id}': " + "; ".join(problems))

    def _collect_problems(self) -> List[str]:
        problems = []
        if not self.id:
            problems.append("id must not be empty")
        if not self.templates:
            problems.append("at least one dialect template is required")

        declared = []
        for parameter in self.parameters:
            if parameter.name in declared:
                problems.append(f"parameter '{parameter.name}' declared twice")
            declared.append(parameter.name)
            if parameter.type == ParameterType.ENUM and not parameter.choices:
                problems.append(f"enum parameter '{parameter.name}' declares no choices")

        used = set()
        for dialect in self.templates:
            if not is_registered(dialect):
                problems.append(
                    f"unknown dialect '{dialect}' (registered: {registered_dialects()})"
                )
            for name in self.placeholders(dialect):
                used.add(name)
                if name not in declared:
                    problems.append(f"{dialect} template references undeclared parameter '{name}'")

        for name in declared:
            if name not in used:
                problems.append(f"parameter '{name}' is not used by any dialect template")

        for expectation in self.expectations:
            for name in expectation.referenced_parameters():
                if name not in declared:
                    problems.append(f"expectation references undeclared parameter '{name}'")
            if expectation.maximum_param:
                bound = self.parameter(expectation.maximum_param)
                if bound is not None and bound.type != ParameterType.INTEGER:
                    problems.append(
                        f"max_param '{bound.name}' must be an integer parameter, not {bound.type.value}"
                    )
        return problems

    def to_record(self) -> Dict[str, Any]:
        """Plain-data representation that ``from_record`` restores losslessly."""
        return {
            "id": self.id,
            "category": self.category.value,
            "intent": self.intent,
            "parameters": [p.to_record() for p in self.parameters],
            "templates": dict(self.templates),
            "edge_cases": list(self.edge_cases),
            "expectations": [e.to_record() for e in self.expectations],
            "deterministic": self.deterministic,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QueryDefinition":
        """Build a definition from a plain mapping.

        Raises:
            CatalogLoadError: If the record is malformed or violates invariants
        """
        if not isinstance(record, Mapping):
            raise CatalogLoadError(f"Query record must be a mapping, got {type(record).__name__}")
        query_id = record.get("id", "<missing id>")
        try:
            templates = record["templates"]
            if not isinstance(templates, Mapping):
                raise ValueError("templates must map dialect names to SQL text")
            return cls(
                id=record["id"],
                category=Category(record["category"]),
                intent=record.get("intent", ""),
                templates={str(k): str(v) for k, v in templates.items()},
                parameters=tuple(Parameter.from_record(p) for p in record.get("parameters") or ()),
                edge_cases=tuple(record.get("edge_cases") or ()),
                expectations=tuple(
                    Expectation.from_record(e) for e in record.get("expectations") or ()
                ),
                deterministic=bool(record.get("deterministic", True)),
            )
        except CatalogLoadError:
            raise
        except KeyError as e:
            raise CatalogLoadError(f"Query record '{query_id}' is missing field {e}") from e
        except (TypeError, ValueError, TypeMismatchError) as e:
            raise CatalogLoadError(f"Query record '{query_id}' is invalid: {e}") from e


def _plain_value(value: Any) -> Any:
    """Convert typed values to YAML-safe scalars."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value
