"""Query invocation: runner and caller-side retry helper."""

from .retry import run_with_retries
from .runner import BatchOutcome, QueryRunner

__all__ = ["BatchOutcome", "QueryRunner", "run_with_retries"]
