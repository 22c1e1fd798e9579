"""QueryRunner drives one invocation: resolve, bind, execute, validate."""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..binder import ParameterBinder
from ..catalog import Catalog, Category
from ..datasources.base import ExecutionAdapter
from ..errors import QueryCatalogError, UnsupportedDialectError
from ..utils.logging import get_contextual_logger
from ..validate import InvocationState, Report, ResultValidator


@dataclass
class BatchOutcome:
    """Result of one query in a catalog-wide run."""

    query_id: str
    report: Optional[Report] = None
    error: Optional[QueryCatalogError] = None


class QueryRunner:
    """Coordinates the catalog, binder, adapters and validator.

    The runner never retries. Connection failures surface as
    ``BackendConnectionError`` so the caller can apply its own policy.
    """

    def __init__(
        self,
        catalog: Catalog,
        adapters: Mapping[str, ExecutionAdapter],
        binder: Optional[ParameterBinder] = None,
        validator: Optional[ResultValidator] = None,
        default_timeout: Optional[float] = None,
    ):
        """Initialize dependencies.

        Args:
            catalog: Loaded catalog
            adapters: Execution adapters keyed by dialect name
            binder: Parameter binder (default: ``ParameterBinder()``)
            validator: Result validator (default: ``ResultValidator()``)
            default_timeout: Deadline in seconds used when a call passes none
        """
        self.catalog = catalog
        self.adapters: Dict[str, ExecutionAdapter] = dict(adapters)
        if binder is None:
            binder = ParameterBinder()
        self.binder = binder
        if validator is None:
            validator = ResultValidator()
        self.validator = validator
        self.default_timeout = default_timeout

    def run(
        self,
        query_id: str,
        dialect: str,
        parameters: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Report:
        """Run one catalog query and validate its result.

        Catalog lookup, adapter lookup and binding all finish before the
        backend is touched, so invalid input has no side effects.

        Args:
            query_id: Catalog id
            dialect: Dialect variant to run
            parameters: Caller-supplied parameter values
            timeout: Deadline in seconds

        Returns:
            Validation report for the completed invocation

        Raises:
            QueryCatalogError: Any lookup, binding, execution or structural error
        """
        log = get_contextual_logger(__name__, {"query_id": query_id, "dialect": dialect})
        definition = self.catalog.get(query_id)
        adapter = self.adapter_for(dialect)
        statement = self.binder.bind(definition, dialect, parameters)
        log.debug(f"{query_id}: {InvocationState.BOUND.value}")

        if timeout is None:
            timeout = self.default_timeout
        start = time.perf_counter()
        try:
            log.debug(f"{query_id}: {InvocationState.EXECUTING.value} on {adapter.name}")
            result = adapter.execute(statement, timeout=timeout)
            report = self.validator.validate(
                result, definition, statement.parameters, dialect=dialect
            )
        except QueryCatalogError as e:
            log.warning(f"{query_id}: {InvocationState.FAILED.value}: {e}")
            raise
        report.elapsed_ms = (time.perf_counter() - start) * 1000

        outcome = "passed" if report.passed else "failed"
        log.info(
            f"{query_id}: {report.state.value}, {report.row_count} row(s), "
            f"assertions {outcome} in {report.elapsed_ms:.2f} ms"
        )
        return report

    def run_all(
        self,
        dialect: str,
        category: Optional[Category] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> List[BatchOutcome]:
        """Run every definition that has a ``dialect`` variant.

        Args:
            dialect: Dialect variant to run
            category: Restrict to one category
            overrides: Parameter values applied to every definition that declares them
            timeout: Deadline in seconds per query

        Returns:
            One outcome per definition, in catalog order
        """
        outcomes = []
        for definition in self.catalog.list(category):
            if dialect not in definition.templates:
                continue
            values = self._select_overrides(definition, overrides or {})
            try:
                report = self.run(definition.id, dialect, values, timeout=timeout)
            except QueryCatalogError as e:
                outcomes.append(BatchOutcome(definition.id, error=e))
                continue
            outcomes.append(BatchOutcome(definition.id, report=report))
        return outcomes

    def _select_overrides(self, definition, overrides: Mapping[str, Any]) -> Dict[str, Any]:
        values = {}
        for name, value in overrides.items():
            if definition.parameter(name) is not None:
                values[name] = value
        return values

    def adapter_for(self, dialect: str) -> ExecutionAdapter:
        """Adapter configured for ``dialect``.

        Raises:
            UnsupportedDialectError: If no adapter serves the dialect
        """
        adapter = self.adapters.get(dialect)
        if adapter is None:
            configured = ", ".join(sorted(self.adapters)) or "none"
            raise UnsupportedDialectError(
                f"No adapter configured for dialect '{dialect}' (configured: {configured})"
            )
        return adapter
