"""
Core types and protocols used across modules.

This module provides the error taxonomy enums and the observability protocol
definitions shared by the error classifier, retry policy, transaction
executor and paginator.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol


class ErrorCategory(str, Enum):
    """
    Broad classification of a failure reported by the ledger service.

    Categories:
        VALIDATION: Request payload rejected (400)
        NOT_FOUND: Referenced entity does not exist (404)
        AUTHENTICATION: Missing or invalid credentials (401)
        AUTHORIZATION: Credentials valid but not permitted (403)
        CONFLICT: State conflict, including idempotency-key reuse (409)
        LIMIT_EXCEEDED: Rate limit or quota exceeded (429)
        TIMEOUT: Request or gateway timed out (408/504)
        NETWORK: Connection could not be established or was dropped
        UNPROCESSABLE: Business rule rejection, e.g. insufficient funds (422)
        INTERNAL: Server-side failure (5xx)
        UNKNOWN: Anything that could not be classified
    """

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    LIMIT_EXCEEDED = "limit_exceeded"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNPROCESSABLE = "unprocessable"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


class ErrorCode(str, Enum):
    """Fine-grained error codes carried by domain errors."""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    AUTHENTICATION_ERROR = "authentication_error"
    PERMISSION_ERROR = "permission_error"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ACCOUNT_ELIGIBILITY_ERROR = "account_eligibility_error"
    ASSET_MISMATCH = "asset_mismatch"
    IDEMPOTENCY_ERROR = "idempotency_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    INTERNAL_ERROR = "internal_error"


class TransactionErrorCategory(str, Enum):
    """
    Business-level bucket for a failed transaction submission.

    DUPLICATE_TRANSACTION is the only bucket the transaction executor treats
    as a non-failure: the financial effect was already committed once.
    """

    INSUFFICIENT_FUNDS = "insufficient_funds"
    ACCOUNT_FROZEN = "account_frozen"
    ACCOUNT_INACTIVE = "account_inactive"
    ACCOUNT_INELIGIBLE = "account_ineligible"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    LIMIT_EXCEEDED = "limit_exceeded"
    ASSET_MISMATCH = "asset_mismatch"
    NEGATIVE_BALANCE = "negative_balance"
    INVALID_TRANSACTION = "invalid_transaction"
    ACCOUNT_NOT_FOUND = "account_not_found"
    UNAUTHORIZED_TRANSACTION = "unauthorized_transaction"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTION_FAILED = "transaction_failed"


class Span(Protocol):
    """
    Protocol for a single traced unit of work.

    Every span obtained from an ObservabilitySink must be ended exactly once,
    on success, failure and cancellation paths alike.
    """

    def set_attribute(self, key: str, value: Any) -> None:
        """Attach a key/value attribute to the span."""
        ...

    def record_exception(self, error: BaseException) -> None:
        """Record an exception event on the span."""
        ...

    def set_status(self, status: str, message: str | None = None) -> None:
        """
        Set the span outcome.

        Args:
            status: Either "ok" or "error"
            message: Optional description, used for errors
        """
        ...

    def end(self) -> None:
        """Finish the span."""
        ...


class ObservabilitySink(Protocol):
    """
    Protocol for tracing backends.

    Implementations include the no-op sink used by default and the
    OpenTelemetry-backed sink in midaz_core.telemetry.
    """

    def start_span(
        self, name: str, attributes: Mapping[str, Any] | None = None
    ) -> Span:
        """
        Start a new span.

        Args:
            name: Span name, e.g. "retry_policy.execute"
            attributes: Initial span attributes

        Returns:
            A started Span that the caller must end
        """
        ...


__all__ = [
    "ErrorCategory",
    "ErrorCode",
    "TransactionErrorCategory",
    "Span",
    "ObservabilitySink",
]
