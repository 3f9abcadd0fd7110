"""Tests for building core objects from MidazConfig."""

import logging
from unittest.mock import AsyncMock

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from midaz_config import MidazConfig, ObservabilityConfig, RetryPolicyConfig, reset_config, set_config
from midaz_config.assembly import (
    configure_logging,
    create_observability_sink,
    create_paginator,
    create_retry_options,
    create_retry_policy,
    create_transaction_executor,
)
from midaz_core.pagination import CursorPaginator
from midaz_core.resilience import TransactionExecutor
from midaz_core.telemetry import NoOpSink, OpenTelemetrySink, get_sink


@pytest.fixture
def config():
    return MidazConfig(
        retry=RetryPolicyConfig(
            max_retries=1, initial_delay_ms=20, max_delay_ms=200, retryable_status_codes=[503]
        ),
        observability=ObservabilityConfig(enable_metrics=False, service_name="assembly-test"),
    )


class TestRetry:
    def test_options_from_config(self, config):
        options = create_retry_options(config)
        assert options.max_retries == 1
        assert options.initial_delay_ms == 20.0
        assert options.max_delay_ms == 200.0
        assert options.retryable_status_codes == frozenset({503})

    def test_keyword_changes_win(self, config):
        assert create_retry_options(config, max_retries=4).max_retries == 4

    def test_policy_uses_singleton_when_no_config(self, config):
        set_config(config)
        try:
            assert create_retry_policy().options.max_retries == 1
        finally:
            reset_config()


class TestSinks:
    def test_noop_when_tracing_disabled(self, config):
        sink = create_observability_sink(config)
        assert isinstance(sink, NoOpSink)
        assert get_sink() is sink

    def test_otel_when_tracing_enabled(self, config):
        config.observability.enable_tracing = True
        exporter = InMemorySpanExporter()

        sink = create_observability_sink(config, exporter=exporter, install=False)

        assert isinstance(sink, OpenTelemetrySink)
        assert sink.service_name == "assembly-test"
        assert not isinstance(get_sink(), OpenTelemetrySink)


class TestExecutorAndPaginator:
    @pytest.mark.asyncio
    async def test_transaction_executor(self, config, recording_sink):
        executor = create_transaction_executor(config, sink=recording_sink)
        assert isinstance(executor, TransactionExecutor)
        assert executor.policy.options.max_retries == 1

        result = await executor.execute_transaction(AsyncMock(return_value={"id": "tx"}))

        assert result.succeeded
        assert {span.name for span in recording_sink.spans} == {
            "transaction.execute",
            "retry_policy.execute",
        }

    @pytest.mark.asyncio
    async def test_paginator(self, config):
        fetch = AsyncMock(return_value={"items": [1], "meta": {}})
        paginator = create_paginator(fetch, {"limit": 1}, config, resource="ledgers")
        assert isinstance(paginator, CursorPaginator)
        assert paginator.options.limit == 1
        assert await paginator.get_all_items() == [1]


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_disabled(self, config):
        config.observability.enable_logging = False
        assert configure_logging(config) is None

    def test_level_applied(self, config):
        config.observability.log_level = "ERROR"
        root = configure_logging(config)
        assert root.handlers[0].level == logging.ERROR
