"""Parameter binder: validates caller values and produces bound statements."""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..catalog.definition import QueryDefinition, find_placeholders
from ..dialects import Dialect, ParamStyle, get_dialect
from ..errors import (
    MissingParameterError,
    UnknownParameterError,
    UnsupportedDialectError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundStatement:
    """SQL text with driver bind markers plus the values to bind.

    Attributes:
        query_id: Id of the definition the statement came from
        dialect: Dialect name the template was selected for
        sql: Template text with placeholders replaced by bind markers
        values: Positional values in marker order
        param_style: Marker style used in ``sql``
        parameters: Resolved value of every declared parameter, by name
    """

    query_id: str
    dialect: str
    sql: str
    values: Tuple[Any, ...]
    param_style: ParamStyle
    parameters: Mapping[str, Any]


class ParameterBinder:
    """Binds caller values to a definition's dialect template.

    Values are never written into SQL text. Every placeholder becomes a
    bind marker and the value travels separately to the driver.
    """

    def bind(
        self,
        definition: QueryDefinition,
        dialect: str,
        values: Optional[Mapping[str, Any]] = None,
    ) -> BoundStatement:
        """Bind ``values`` to the ``dialect`` template of ``definition``.

        Args:
            definition: Query definition to bind
            dialect: Name of the dialect variant to use
            values: Caller-supplied parameter values by name

        Returns:
            A new bound statement

        Raises:
            UnsupportedDialectError: If the definition has no template for dialect
            UnknownParameterError: If values contain undeclared names
            MissingParameterError: If a required parameter has no value or default
            TypeMismatchError: If a value does not fit its declared type
        """
        template = self._select_template(definition, dialect)
        dialect_info = get_dialect(dialect)
        resolved = self._resolve_values(definition, values or {})
        sql, bound_values = self._substitute(template, dialect_info, resolved)

        logger.debug(
            f"Bound {definition.id} for {dialect} with {len(bound_values)} value(s)"
        )
        return BoundStatement(
            query_id=definition.id,
            dialect=dialect,
            sql=sql,
            values=tuple(bound_values),
            param_style=dialect_info.param_style,
            parameters=MappingProxyType(resolved),
        )

    def _select_template(self, definition: QueryDefinition, dialect: str) -> str:
        template = definition.templates.get(dialect)
        if template is None:
            raise UnsupportedDialectError(
                f"Query {definition.id} has no '{dialect}' variant "
                f"(available: {', '.join(definition.dialects)})"
            )
        return template

    def _resolve_values(
        self, definition: QueryDefinition, values: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Check names and types, filling defaults for absent parameters."""
        declared = [parameter.name for parameter in definition.parameters]
        unknown = [name for name in values if name not in declared]
        if unknown:
            raise UnknownParameterError(definition.id, unknown)

        resolved: Dict[str, Any] = {}
        for parameter in definition.parameters:
            value = values.get(parameter.name)
            if value is not None:
                resolved[parameter.name] = parameter.coerce(value)
            elif parameter.has_default:
                resolved[parameter.name] = parameter.default
            elif parameter.required:
                raise MissingParameterError(definition.id, parameter.name)
            else:
                resolved[parameter.name] = None
        return resolved

    def _substitute(
        self, template: str, dialect: Dialect, resolved: Mapping[str, Any]
    ) -> Tuple[str, List[Any]]:
        """Replace placeholders with markers and collect values in marker order."""
        parts: List[str] = []
        bound_values: List[Any] = []
        positions: Dict[str, int] = {}
        cursor = 0
        for placeholder in find_placeholders(template):
            parts.append(template[cursor:placeholder.start])
            if dialect.reuses_markers and placeholder.name in positions:
                position = positions[placeholder.name]
            else:
                bound_values.append(resolved[placeholder.name])
                position = len(bound_values)
                positions[placeholder.name] = position
            parts.append(dialect.marker(position))
            cursor = placeholder.end
        parts.append(template[cursor:])
        return "".join(parts), bound_values
