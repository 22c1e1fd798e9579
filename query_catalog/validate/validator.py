"""Check query results against a definition's declared expectations.

A failed expectation is a normal outcome recorded in the report; only
structural problems (a referenced column missing from the result) raise.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..catalog.definition import Expectation, ExpectationKind, QueryDefinition
from ..datasources.base import ResultSet
from ..errors import SchemaMismatchError

logger = logging.getLogger(__name__)


class InvocationState(Enum):
    """Lifecycle of one query invocation."""

    BOUND = "bound"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AssertionResult:
    """Outcome of one expectation."""

    kind: str
    description: str
    passed: bool
    detail: str = ""


@dataclass
class Report:
    """Per-assertion outcome of one query invocation."""

    query_id: str
    dialect: Optional[str]
    state: InvocationState
    row_count: int
    assertions: List[AssertionResult] = field(default_factory=list)
    attempts: int = 1
    elapsed_ms: float = 0.0
    result: Optional[ResultSet] = field(default=None, repr=False, compare=False)

    @property
    def passed(self) -> bool:
        return self.state == InvocationState.COMPLETED and all(a.passed for a in self.assertions)

    @property
    def failed_assertions(self) -> List[AssertionResult]:
        return [a for a in self.assertions if not a.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_id": self.query_id,
            "dialect": self.dialect,
            "state": self.state.value,
            "row_count": self.row_count,
            "passed": self.passed,
            "attempts": self.attempts,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "assertions": [
                {
                    "kind": a.kind,
                    "description": a.description,
                    "passed": a.passed,
                    "detail": a.detail,
                }
                for a in self.assertions
            ],
        }


class ResultValidator:
    """Evaluates expectations against a result set."""

    def validate(
        self,
        result_set: ResultSet,
        definition: QueryDefinition,
        parameters: Optional[Mapping[str, Any]] = None,
        dialect: Optional[str] = None,
    ) -> Report:
        """Validate ``result_set`` against ``definition``'s expectations.

        Args:
            result_set: Result returned by an adapter
            definition: Definition whose expectations apply
            parameters: Bound parameter values, for parameter-relative expectations
            dialect: Dialect the result came from, recorded in the report

        Returns:
            Report with one assertion result per expectation

        Raises:
            SchemaMismatchError: If an expectation names a column the result lacks
        """
        parameters = parameters or {}
        assertions = []
        for expectation in definition.expectations:
            assertions.append(self._evaluate(expectation, result_set, parameters))

        report = Report(
            query_id=definition.id,
            dialect=dialect,
            state=InvocationState.COMPLETED,
            row_count=result_set.row_count,
            assertions=assertions,
            result=result_set,
        )
        failed = len(report.failed_assertions)
        if failed:
            logger.info(f"{definition.id}: {failed} of {len(assertions)} assertion(s) failed")
        return report

    def _evaluate(
        self, expectation: Expectation, result_set: ResultSet, parameters: Mapping[str, Any]
    ) -> AssertionResult:
        kind = expectation.kind
        if kind == ExpectationKind.ROW_COUNT:
            passed, detail = self._check_row_count(expectation, result_set, parameters)
        elif kind == ExpectationKind.NOT_NULL:
            nulls = self._count_nulls(result_set.column_values(expectation.column))
            passed, detail = nulls == 0, f"{nulls} NULL value(s)"
        elif kind == ExpectationKind.HAS_NULL:
            nulls = self._count_nulls(result_set.column_values(expectation.column))
            passed, detail = nulls > 0, f"{nulls} NULL value(s)"
        elif kind == ExpectationKind.ORDERED:
            passed, detail = self._check_ordered(expectation, result_set)
        elif kind == ExpectationKind.EQUALS:
            passed, detail = self._check_equals(expectation, result_set, parameters)
        else:
            passed, detail = self._check_columns(expectation, result_set)
        return AssertionResult(kind.value, expectation.describe(), passed, detail)

    def _check_row_count(self, expectation, result_set, parameters):
        count = result_set.row_count
        upper_bounds = []
        if expectation.maximum is not None:
            upper_bounds.append(expectation.maximum)
        if expectation.maximum_param:
            bound = parameters.get(expectation.maximum_param)
            if bound is not None:
                upper_bounds.append(bound)

        if expectation.minimum is not None and count < expectation.minimum:
            return False, f"{count} row(s), expected at least {expectation.minimum}"
        for bound in upper_bounds:
            if count > bound:
                return False, f"{count} row(s), expected at most {bound}"
        return True, f"{count} row(s)"

    def _count_nulls(self, values: List[Any]) -> int:
        nulls = 0
        for value in values:
            if value is None:
                nulls += 1
        return nulls

    def _check_ordered(self, expectation, result_set):
        values = [v for v in result_set.column_values(expectation.column) if v is not None]
        if expectation.case_insensitive:
            values = [v.casefold() if isinstance(v, str) else v for v in values]
        descending = expectation.direction == "desc"
        for i in range(1, len(values)):
            previous, current = values[i - 1], values[i]
            out_of_order = current > previous if descending else current < previous
            if out_of_order:
                return False, f"{current!r} follows {previous!r} at non-null position {i}"
        return True, f"{len(values)} non-null value(s) in order"

    def _check_equals(self, expectation, result_set, parameters):
        if expectation.value_param:
            target = parameters.get(expectation.value_param)
        else:
            target = expectation.value
        values = result_set.column_values(expectation.column)
        mismatches = [v for v in values if v != target]
        if mismatches:
            return False, f"{len(mismatches)} row(s) differ, first: {mismatches[0]!r}"
        return True, f"all {len(values)} row(s) equal {target!r}"

    def _check_columns(self, expectation, result_set):
        missing = [c for c in expectation.columns if result_set.resolve_column(c) is None]
        if missing:
            raise SchemaMismatchError(
                f"Result is missing declared column(s) {missing}; got {result_set.columns}"
            )
        return True, f"{len(expectation.columns)} column(s) present"
