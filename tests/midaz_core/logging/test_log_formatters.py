"""Tests for JSON and console log formatters."""

import json
import logging
import sys
from decimal import Decimal

import pytest

from midaz_core.errors import InternalError
from midaz_core.logging import (
    ConsoleFormatter,
    JSONFormatter,
    LogContext,
    log_exception,
    set_log_context,
)
from midaz_core.utils import json_serializer


def make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="midaz.test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_base_fields(self):
        entry = json.loads(JSONFormatter().format(make_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "midaz.test"
        assert entry["message"] == "hello"
        assert entry["ts"].endswith("Z")
        assert "file" not in entry

    def test_source_location_on_error(self):
        entry = json.loads(JSONFormatter().format(make_record(level=logging.ERROR)))
        assert entry["file"] == "test.py:10"

    def test_retry_extra_fields(self):
        record = make_record(
            operation="createTransaction",
            attempt="2",
            max_retries=3,
            delay_ms="150.5",
            error_category="internal",
            unrelated="ignored",
        )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["operation"] == "createTransaction"
        assert entry["attempt"] == 2
        assert entry["delay_ms"] == 150.5
        assert entry["error_category"] == "internal"
        assert "unrelated" not in entry

    def test_bad_numeric_value_becomes_null(self):
        entry = json.loads(JSONFormatter().format(make_record(status_code="n/a")))
        assert entry["status_code"] is None

    def test_url_sanitized(self):
        record = make_record(http_url="https://api/v1/accounts?cursor=abc&limit=10&token=s3")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["http_url"] == (
            "https://api/v1/accounts?cursor=[REDACTED]&limit=10&token=[REDACTED]"
        )

    def test_context_injected(self):
        with LogContext(organization_id="org-1", ledger_id="led-1"):
            entry = json.loads(JSONFormatter().format(make_record()))
        assert entry["organization_id"] == "org-1"
        assert entry["ledger_id"] == "led-1"
        assert "batch_id" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("broken")
        except ValueError:
            record = make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "broken"
        assert entry["exception"]["category"] == "ValueError"


class TestConsoleFormatter:
    def test_tags(self):
        set_log_context(batch_id="abcdef1234567890")
        output = ConsoleFormatter().format(make_record(operation="listAccounts"))
        assert "[listAccounts]" in output
        assert "[batch:abcdef12]" in output
        assert output.endswith("hello")

    def test_ledger_tag_from_context(self):
        with LogContext(ledger_id="led-7"):
            output = ConsoleFormatter().format(make_record())
        assert "[ledger:led-7]" in output

    def test_no_tags(self):
        output = ConsoleFormatter().format(make_record())
        assert output.endswith(" - midaz.test - hello")


class TestLogException:
    def test_extracts_midaz_error_fields(self, caplog):
        logger = logging.getLogger("midaz.test.log_exception")
        error = InternalError("db down", status_code=503)

        with caplog.at_level(logging.ERROR, logger=logger.name):
            log_exception(logger, error, "Submission failed", include_traceback=False)

        record = caplog.records[-1]
        assert record.error_category == "internal"
        assert record.error_code == "internal_error"
        assert record.status_code == 503
        assert record.error_type == "InternalError"


class TestJsonSerializer:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (Decimal("10.50"), "10.50"),
            ({3, 1, 2}, [1, 2, 3]),
        ],
    )
    def test_values(self, value, expected):
        assert json_serializer(value) == expected
