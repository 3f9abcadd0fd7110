"""Tests for log context variables, context managers and setup."""

import asyncio
import json
import logging

import pytest
from opentelemetry.sdk.trace import TracerProvider

from midaz_core.logging import (
    JSONFormatter,
    LogContext,
    bind_log_context,
    clear_log_context,
    get_log_context,
    log_operation,
    set_log_context,
    setup_logging,
    unbind_log_context,
)


class TestLogContextVars:
    def test_defaults_empty(self):
        context = get_log_context()
        assert context["organization_id"] == ""
        assert context["request_id"] == ""
        assert "otel_trace_id" not in context

    def test_set_and_clear(self):
        set_log_context(organization_id="org-1", request_id="req-1")
        assert get_log_context()["organization_id"] == "org-1"
        clear_log_context()
        assert get_log_context()["organization_id"] == ""

    def test_otel_ids_when_span_active(self):
        tracer = TracerProvider().get_tracer("test")
        with tracer.start_as_current_span("outer") as span:
            context = get_log_context()
            expected = format(span.get_span_context().trace_id, "032x")
        assert context["otel_trace_id"] == expected
        assert len(context["otel_span_id"]) == 16

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        async def worker(org_id):
            set_log_context(organization_id=org_id)
            await asyncio.sleep(0)
            return get_log_context()["organization_id"]

        results = await asyncio.gather(worker("a"), worker("b"))
        assert results == ["a", "b"]


class TestLogContextManager:
    def test_restores_previous_values(self):
        set_log_context(ledger_id="outer")
        with LogContext(ledger_id="inner", batch_id="b1"):
            assert get_log_context()["ledger_id"] == "inner"
            assert get_log_context()["batch_id"] == "b1"
        assert get_log_context()["ledger_id"] == "outer"
        assert get_log_context()["batch_id"] == ""

    def test_unset_fields_untouched(self):
        set_log_context(organization_id="org-1")
        with LogContext(ledger_id="l1"):
            assert get_log_context()["organization_id"] == "org-1"
        assert get_log_context()["organization_id"] == "org-1"

    def test_bind_and_unbind(self):
        tokens = bind_log_context(request_id="req-9", ledger_id=None)
        assert set(tokens) == {"request_id"}
        assert get_log_context()["request_id"] == "req-9"
        unbind_log_context(tokens)
        assert get_log_context()["request_id"] == ""

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            bind_log_context(account_id="a1")


class TestLogOperation:
    def test_logs_completion_with_duration(self, caplog):
        logger = logging.getLogger("midaz.test.operation")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with log_operation(logger, "listAccounts", resource="accounts") as op:
                op.add_context(item_count=3)

        record = caplog.records[-1]
        assert record.getMessage() == "Completed: listAccounts"
        assert record.levelno == logging.DEBUG
        assert record.operation == "listAccounts"
        assert record.resource == "accounts"
        assert record.item_count == 3
        assert record.duration_ms >= 0

    def test_slow_completion_promoted_to_info(self, caplog):
        logger = logging.getLogger("midaz.test.operation_slow")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with log_operation(logger, "listLedgers", slow_threshold_ms=0.000001) as op:
                op.started_at -= 1

        assert caplog.records[-1].levelno == logging.INFO

    def test_logs_failure_and_propagates(self, caplog):
        logger = logging.getLogger("midaz.test.operation_fail")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with pytest.raises(RuntimeError):
                with log_operation(logger, "createTransaction"):
                    raise RuntimeError("boom")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.getMessage() == "Failed: createTransaction"
        assert record.error_message == "boom"
        assert record.error_category == "RuntimeError"

    def test_cancellation_not_logged_as_failure(self, caplog):
        logger = logging.getLogger("midaz.test.operation_cancel")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with pytest.raises(asyncio.CancelledError):
                with log_operation(logger, "listAccounts"):
                    raise asyncio.CancelledError()

        assert not any(r.getMessage().startswith("Failed") for r in caplog.records)


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers = handlers
        root.setLevel(level)

    def test_console_handler_level_from_name(self):
        root = setup_logging(level="warning")
        (handler,) = root.handlers
        assert handler.level == logging.WARNING

    def test_json_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "midaz.log"
        root = setup_logging(json_format=True, log_file=log_file)
        assert len(root.handlers) == 2
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

        logging.getLogger("midaz.test.file").info("written", extra={"attempt": 1})
        for handler in root.handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["attempt"] == 1

    def test_noisy_loggers_suppressed(self):
        setup_logging()
        assert logging.getLogger("aiohttp").level == logging.WARNING
