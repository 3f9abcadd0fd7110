"""
Error hierarchy and classification.

Provides:
- MidazError and its typed subclasses
- error_from_http_response for building errors from failed responses
- classify() and companions for normalizing any raised value
- TransportErrorClassifier for aiohttp/asyncio transport failures
"""

from midaz_core.errors.classifiers import (
    ClassifiedError,
    ErrorReport,
    adapt_failure,
    categorize_transaction_error,
    classify,
    describe_error,
    is_duplicate_transaction,
    is_insufficient_funds,
    is_transient,
    recovery_recommendation,
    technical_details,
    user_friendly_message,
)
from midaz_core.errors.exceptions import (
    AccountEligibilityError,
    AssetMismatchError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    IdempotencyError,
    InsufficientBalanceError,
    InternalError,
    MidazError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    UnprocessableError,
    ValidationError,
    error_from_http_response,
)
from midaz_core.errors.transport_classifier import (
    TransportErrorClassifier,
    classify_transport_error,
    translate_transport_errors,
)

__all__ = [
    # Exceptions
    "MidazError",
    "ValidationError",
    "NotFoundError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "IdempotencyError",
    "RateLimitError",
    "UnprocessableError",
    "InsufficientBalanceError",
    "AccountEligibilityError",
    "AssetMismatchError",
    "RequestTimeoutError",
    "NetworkError",
    "InternalError",
    "error_from_http_response",
    # Classification
    "ClassifiedError",
    "ErrorReport",
    "adapt_failure",
    "classify",
    "describe_error",
    "user_friendly_message",
    "categorize_transaction_error",
    "is_duplicate_transaction",
    "is_insufficient_funds",
    "is_transient",
    "recovery_recommendation",
    "technical_details",
    # Transport
    "TransportErrorClassifier",
    "classify_transport_error",
    "translate_transport_errors",
]
