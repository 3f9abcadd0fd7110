"""Context variables for structured logging."""

from contextvars import ContextVar, Token
from typing import Dict, Optional

from opentelemetry import trace

_organization_id: ContextVar[str] = ContextVar("organization_id", default="")
_ledger_id: ContextVar[str] = ContextVar("ledger_id", default="")
_request_id: ContextVar[str] = ContextVar("request_id", default="")
_batch_id: ContextVar[str] = ContextVar("batch_id", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")

_CONTEXT_VARS: Dict[str, ContextVar[str]] = {
    "organization_id": _organization_id,
    "ledger_id": _ledger_id,
    "request_id": _request_id,
    "batch_id": _batch_id,
    "trace_id": _trace_id,
}

CONTEXT_FIELDS = tuple(_CONTEXT_VARS)


def set_log_context(
    organization_id: Optional[str] = None,
    ledger_id: Optional[str] = None,
    request_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    bind_log_context(
        organization_id=organization_id,
        ledger_id=ledger_id,
        request_id=request_id,
        batch_id=batch_id,
        trace_id=trace_id,
    )


def bind_log_context(**fields: Optional[str]) -> Dict[str, Token]:
    """
    Set the given context fields, skipping None values.

    Returns the tokens needed to undo the change with unbind_log_context().

    Raises:
        KeyError: For a field that is not a known context field
    """
    tokens: Dict[str, Token] = {}
    for name, value in fields.items():
        if value is None:
            continue
        tokens[name] = _CONTEXT_VARS[name].set(value)
    return tokens


def unbind_log_context(tokens: Dict[str, Token]) -> None:
    for name, token in tokens.items():
        _CONTEXT_VARS[name].reset(token)


def get_log_context() -> Dict[str, str]:
    context = {name: var.get() for name, var in _CONTEXT_VARS.items()}

    # Add OpenTelemetry trace context if a span is active
    span_ctx = trace.get_current_span().get_span_context()
    if span_ctx.is_valid:
        context["otel_trace_id"] = format(span_ctx.trace_id, "032x")
        context["otel_span_id"] = format(span_ctx.span_id, "016x")

    return context


def clear_log_context() -> None:
    for var in _CONTEXT_VARS.values():
        var.set("")
