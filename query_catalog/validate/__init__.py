"""Result validation."""

from .validator import AssertionResult, InvocationState, Report, ResultValidator

__all__ = ["AssertionResult", "InvocationState", "Report", "ResultValidator"]
