"""Caller-side retry policy for transient backend failures."""

import logging
import time
from typing import Any, Callable, Mapping, Optional

from ..errors import BackendConnectionError
from ..validate import Report
from .runner import QueryRunner

logger = logging.getLogger(__name__)


def run_with_retries(
    runner: QueryRunner,
    query_id: str,
    dialect: str,
    parameters: Optional[Mapping[str, Any]] = None,
    attempts: int = 3,
    backoff_seconds: float = 0.5,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Report:
    """Run a query, retrying only on ``BackendConnectionError``.

    The delay doubles after each failed attempt. Every other error is
    raised immediately.

    Args:
        runner: Runner to invoke
        query_id: Catalog id
        dialect: Dialect variant
        parameters: Parameter values
        attempts: Maximum number of attempts, at least 1
        backoff_seconds: Delay before the second attempt
        timeout: Per-attempt deadline in seconds
        sleep: Sleep function (injectable for tests)

    Returns:
        The report of the successful attempt, with ``attempts`` set

    Raises:
        BackendConnectionError: If every attempt failed to connect
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    attempt = 1
    while True:
        try:
            report = runner.run(query_id, dialect, parameters, timeout=timeout)
        except BackendConnectionError as e:
            if attempt >= attempts:
                logger.error(f"{query_id}: giving up after {attempt} attempt(s): {e}")
                raise
            delay = backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                f"{query_id}: attempt {attempt}/{attempts} failed ({e}), retrying in {delay:.2f}s"
            )
            sleep(delay)
            attempt += 1
            continue
        report.attempts = attempt
        return report
