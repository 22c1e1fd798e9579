"""Tests for logging setup."""

import json
import logging

from query_catalog.utils.logging import (
    StandardFormatter,
    StructuredFormatter,
    get_contextual_logger,
    setup_logging,
)


def _record(message="hello", **extra):
    record = logging.LogRecord(
        name="query_catalog.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_emits_json():
    output = StructuredFormatter().format(_record("query done"))
    data = json.loads(output)

    assert data["level"] == "INFO"
    assert data["logger"] == "query_catalog.test"
    assert data["message"] == "query done"
    assert "timestamp" in data


def test_structured_formatter_includes_context_fields():
    record = _record(extra_fields={"query_id": "top-n-by-sales", "dialect": "duckdb"})
    data = json.loads(StructuredFormatter().format(record))

    assert data["query_id"] == "top-n-by-sales"
    assert data["dialect"] == "duckdb"


def test_contextual_logger_tags_records(caplog):
    log = get_contextual_logger("query_catalog.test", {"query_id": "orders-page"})

    with caplog.at_level(logging.INFO, logger="query_catalog.test"):
        log.info("running", extra={"extra_fields": {"attempt": 2}})

    record = caplog.records[-1]
    assert record.extra_fields == {"query_id": "orders-page", "attempt": 2}


def test_setup_logging_levels(tmp_path):
    log_file = tmp_path / "qcat.log"
    setup_logging(level="DEBUG", structured=True, log_file=str(log_file))

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    assert isinstance(root.handlers[0].formatter, StructuredFormatter)
    assert logging.getLogger("psycopg").level == logging.WARNING

    logging.getLogger("query_catalog.test").debug("to file")
    for handler in root.handlers:
        handler.flush()
    assert "to file" in log_file.read_text()

    setup_logging(level="WARNING")
    assert logging.getLogger().level == logging.WARNING


def test_standard_formatter_appends_context():
    plain = StandardFormatter().format(_record("bound"))
    assert plain.endswith("INFO - bound")

    tagged = StandardFormatter().format(
        _record("bound", extra_fields={"query_id": "orders-page", "dialect": "duckdb"})
    )
    assert tagged.endswith("bound [query_id=orders-page dialect=duckdb]")
