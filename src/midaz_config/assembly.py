"""
Startup wiring: turns a MidazConfig into core resilience objects.

This is the only place configuration reaches midaz_core. Call it once at
process start and pass the results down.

Usage:
    config = load_config()
    configure_logging(config)
    executor = create_transaction_executor(config)
"""

import logging
from typing import Any, Mapping

from opentelemetry.sdk.trace.export import SpanExporter

from midaz_config.config import MidazConfig, get_config
from midaz_core.logging import setup_logging
from midaz_core.pagination import CursorPaginator, ListOptions
from midaz_core.pagination.cursor import FetchPage
from midaz_core.resilience import RetryOptions, RetryPolicy, TransactionExecutor
from midaz_core.telemetry import (
    NoOpSink,
    OpenTelemetrySink,
    configure_tracer_provider,
    set_sink,
)
from midaz_core.types import ObservabilitySink

logger = logging.getLogger(__name__)


def _resolve(config: MidazConfig | None) -> MidazConfig:
    return config if config is not None else get_config()


def create_retry_options(config: MidazConfig | None = None, **changes: Any) -> RetryOptions:
    """Build RetryOptions from the retry section; keyword changes win."""
    retry = _resolve(config).retry
    values = {
        "max_retries": retry.max_retries,
        "initial_delay_ms": retry.initial_delay_ms,
        "max_delay_ms": retry.max_delay_ms,
        "retryable_status_codes": frozenset(retry.retryable_status_codes),
    }
    values.update(changes)
    return RetryOptions(**values)


def create_observability_sink(
    config: MidazConfig | None = None,
    *,
    exporter: SpanExporter | None = None,
    install: bool = True,
) -> ObservabilitySink:
    """
    Build the observability sink.

    Tracing disabled gives a NoOpSink. Tracing enabled configures a global
    SDK tracer provider tagged with the service name and returns an
    OpenTelemetrySink on it.

    Args:
        config: Configuration (defaults to get_config())
        exporter: Span exporter to attach; without one spans are recorded
                  but not exported
        install: Also make the sink the module default via set_sink()
    """
    observability = _resolve(config).observability

    sink: ObservabilitySink
    if observability.enable_tracing:
        if exporter is None and observability.collector_endpoint:
            logger.warning(
                "collector_endpoint is set but no span exporter was supplied, spans will not be exported",
                extra={"service_name": observability.service_name},
            )
        provider = configure_tracer_provider(observability.service_name, exporter)
        sink = OpenTelemetrySink(
            tracer=provider.get_tracer(observability.service_name),
            service_name=observability.service_name,
        )
    else:
        sink = NoOpSink()

    if install:
        set_sink(sink)
    return sink


def create_retry_policy(
    config: MidazConfig | None = None,
    *,
    sink: ObservabilitySink | None = None,
    **changes: Any,
) -> RetryPolicy:
    config = _resolve(config)
    return RetryPolicy(
        create_retry_options(config, **changes),
        sink=sink,
        metrics_enabled=config.observability.enable_metrics,
    )


def create_transaction_executor(
    config: MidazConfig | None = None,
    *,
    sink: ObservabilitySink | None = None,
    policy: RetryPolicy | None = None,
) -> TransactionExecutor:
    config = _resolve(config)
    return TransactionExecutor(
        policy or create_retry_policy(config, sink=sink),
        sink=sink,
        metrics_enabled=config.observability.enable_metrics,
    )


def create_paginator(
    fetch_page: FetchPage,
    options: ListOptions | Mapping[str, Any] | None = None,
    config: MidazConfig | None = None,
    **kwargs: Any,
) -> CursorPaginator:
    kwargs.setdefault("metrics_enabled", _resolve(config).observability.enable_metrics)
    return CursorPaginator(fetch_page, options, **kwargs)


def configure_logging(config: MidazConfig | None = None) -> logging.Logger | None:
    """Apply the observability logging settings; no-op when logging is disabled."""
    observability = _resolve(config).observability
    if not observability.enable_logging:
        return None
    return setup_logging(
        level=observability.log_level,
        json_format=observability.json_logs,
        log_file=observability.log_file or None,
    )


__all__ = [
    "create_retry_options",
    "create_retry_policy",
    "create_observability_sink",
    "create_transaction_executor",
    "create_paginator",
    "configure_logging",
]
