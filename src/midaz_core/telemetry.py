"""
Tracing sinks for retry, transaction and pagination spans.

Two sinks are provided:
- NoOpSink: default, discards everything
- OpenTelemetrySink: forwards spans to an OpenTelemetry tracer

Core components accept any object matching the ObservabilitySink protocol
and always end the spans they start, including on cancellation.
"""

import contextlib
import logging
from collections.abc import Iterator, Mapping
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace import Status, StatusCode

from midaz_core.types import ObservabilitySink, Span

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "midaz-python-sdk"


class NoOpSpan:
    """No-op span when tracing is disabled."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def record_exception(self, error: BaseException) -> None:
        pass

    def set_status(self, status: str, message: str | None = None) -> None:
        pass

    def end(self) -> None:
        pass


class NoOpSink:
    """No-op sink when tracing is disabled."""

    def start_span(
        self, name: str, attributes: Mapping[str, Any] | None = None
    ) -> Span:
        return NoOpSpan()


def _otel_value(value: Any) -> Any:
    """OpenTelemetry only accepts primitives (and sequences of them)."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class OtelSpan:
    """Adapts an OpenTelemetry span to the Span protocol."""

    def __init__(self, span: trace.Span):
        self._span = span
        self._ended = False

    @property
    def wrapped(self) -> trace.Span:
        return self._span

    def set_attribute(self, key: str, value: Any) -> None:
        value = _otel_value(value)
        if value is not None:
            self._span.set_attribute(key, value)

    def record_exception(self, error: BaseException) -> None:
        self._span.record_exception(error)

    def set_status(self, status: str, message: str | None = None) -> None:
        if status == "ok":
            self._span.set_status(Status(StatusCode.OK))
        else:
            self._span.set_status(Status(StatusCode.ERROR, message))

    def end(self) -> None:
        if self._ended:
            logger.debug("Span already ended, ignoring second end()")
            return
        self._ended = True
        self._span.end()


class OpenTelemetrySink:
    """
    ObservabilitySink backed by an OpenTelemetry tracer.

    Args:
        tracer: Tracer to use. Defaults to the global tracer provider's
                tracer for service_name.
        service_name: Instrumentation name when no tracer is given
    """

    def __init__(
        self,
        tracer: trace.Tracer | None = None,
        service_name: str = DEFAULT_SERVICE_NAME,
    ):
        self.service_name = service_name
        self._tracer = tracer or trace.get_tracer(service_name)

    def start_span(
        self, name: str, attributes: Mapping[str, Any] | None = None
    ) -> Span:
        attrs = {}
        for key, value in (attributes or {}).items():
            value = _otel_value(value)
            if value is not None:
                attrs[key] = value
        return OtelSpan(self._tracer.start_span(name, attributes=attrs))


def configure_tracer_provider(
    service_name: str = DEFAULT_SERVICE_NAME,
    exporter: SpanExporter | None = None,
    set_global: bool = True,
) -> TracerProvider:
    """
    Create an SDK tracer provider tagged with service.name.

    Args:
        service_name: Value for the service.name resource attribute
        exporter: Optional exporter, attached through a BatchSpanProcessor
        set_global: Install the provider as the global tracer provider

    Returns:
        The configured TracerProvider
    """
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    if set_global:
        trace.set_tracer_provider(provider)
    logger.info(
        "Tracing configured",
        extra={"service_name": service_name, "exporter": type(exporter).__name__ if exporter else None},
    )
    return provider


@contextlib.contextmanager
def traced_span(
    sink: ObservabilitySink,
    name: str,
    attributes: Mapping[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Start a span and guarantee it is ended exactly once.

    Success sets status "ok". Any exception, cancellation included, is
    recorded, sets status "error", and propagates unchanged.
    """
    span = sink.start_span(name, attributes)
    try:
        yield span
    except BaseException as e:
        span.record_exception(e)
        span.set_status("error", str(e) or type(e).__name__)
        raise
    else:
        span.set_status("ok")
    finally:
        span.end()


_default_sink: ObservabilitySink = NoOpSink()


def get_sink() -> ObservabilitySink:
    return _default_sink


def set_sink(sink: ObservabilitySink) -> None:
    global _default_sink
    _default_sink = sink


def reset_sink() -> None:
    global _default_sink
    _default_sink = NoOpSink()


__all__ = [
    "DEFAULT_SERVICE_NAME",
    "NoOpSpan",
    "NoOpSink",
    "OtelSpan",
    "OpenTelemetrySink",
    "configure_tracer_provider",
    "traced_span",
    "get_sink",
    "set_sink",
    "reset_sink",
]
