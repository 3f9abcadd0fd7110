"""
Error classification for ledger client failures.

Turns any raised value (typed MidazError, generic exception, decoded error
payload, bare string, or None) into an immutable ClassifiedError, and
derives user-facing messages and transaction-level buckets from it.

classify() is total: it never raises, whatever it is given.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from midaz_core.errors.exceptions import MidazError
from midaz_core.types import ErrorCategory, ErrorCode, TransactionErrorCategory

UNKNOWN_CATEGORY = ErrorCategory.UNKNOWN.value
UNKNOWN_MESSAGE = "An unknown error occurred"
GENERIC_USER_MESSAGE = (
    "An unexpected error occurred. Please try again or contact support."
)
MAX_USER_MESSAGE_LENGTH = 100

_EMPTY_DETAILS: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class ClassifiedError:
    """
    Normalized view of a failure.

    Attributes:
        category: ErrorCategory value for domain errors, otherwise the
                  exception class name, an attached code, or "unknown"
        message: Human-readable message
        code: Fine-grained error code if known
        status_code: HTTP status code if known
        resource: Resource type involved
        resource_id: Identifier of the resource involved
        request_id: Server-side request identifier
        details: Extra structured details (read-only)
        cause: The original raised value
    """

    category: str
    message: str
    code: str | None = None
    status_code: int | None = None
    resource: str | None = None
    resource_id: str | None = None
    request_id: str | None = None
    details: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_DETAILS, repr=False)
    cause: Any = field(default=None, repr=False, compare=False)

    @property
    def is_domain_error(self) -> bool:
        return isinstance(self.cause, MidazError)


# =============================================================================
# Raw Failure Shapes
# =============================================================================


@dataclass(frozen=True)
class DomainFailure:
    """A MidazError raised by the client layer."""

    error: MidazError


@dataclass(frozen=True)
class HttpLikeFailure:
    """A generic exception, possibly with status/code attributes attached."""

    error: BaseException
    status_code: int | None = None
    code: str | None = None


@dataclass(frozen=True)
class PlainObjectFailure:
    """A decoded error payload such as {"error": "...", "status": 409}."""

    payload: Mapping[str, Any]


@dataclass(frozen=True)
class StringFailure:
    text: str


@dataclass(frozen=True)
class UnknownFailure:
    value: Any


FailureShape = Union[
    DomainFailure, HttpLikeFailure, PlainObjectFailure, StringFailure, UnknownFailure
]


def _coerce_status(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _safe_attr(obj: Any, name: str) -> Any:
    """getattr that also swallows errors raised by properties."""
    try:
        return getattr(obj, name, None)
    except Exception:
        return None


def _coerce_code(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)) and value:
        return str(value)
    return None


def _attached_status(obj: Any) -> int | None:
    for attr in ("status_code", "statusCode", "status"):
        status = _coerce_status(_safe_attr(obj, attr))
        if status is not None:
            return status
    return None


def _payload_status(payload: Mapping[str, Any]) -> int | None:
    for key in ("status", "statusCode", "status_code"):
        status = _coerce_status(payload.get(key))
        if status is not None:
            return status
    return None


def adapt_failure(raw: Any) -> FailureShape:
    """Identify which shape of failure a raised value is."""
    if isinstance(raw, MidazError):
        return DomainFailure(raw)

    if isinstance(raw, BaseException):
        return HttpLikeFailure(
            raw,
            status_code=_attached_status(raw),
            code=_coerce_code(_safe_attr(raw, "code")),
        )

    if isinstance(raw, Mapping):
        error = raw.get("error")
        message = raw.get("message")
        if (isinstance(error, str) and error) or (isinstance(message, str) and message):
            return PlainObjectFailure(raw)
        return UnknownFailure(raw)

    if isinstance(raw, str):
        return StringFailure(raw)

    return UnknownFailure(raw)


# =============================================================================
# Classification
# =============================================================================


def _not_found_message(resource: str | None, resource_id: str | None) -> str:
    resource = resource or "resource"
    if resource_id:
        return f"The requested {resource} ({resource_id}) was not found"
    return f"The requested {resource} was not found"


_CATEGORY_MESSAGES = {
    ErrorCategory.AUTHENTICATION: "Authentication failed. Please check your API credentials",
    ErrorCategory.AUTHORIZATION: "You don't have permission to perform this operation",
    ErrorCategory.LIMIT_EXCEEDED: "Rate limit exceeded. Please try again later",
}


def _classify_domain(error: MidazError) -> ClassifiedError:
    try:
        category = ErrorCategory(error.category)
    except ValueError:
        category = ErrorCategory.UNKNOWN
    message = error.message

    if category == ErrorCategory.NOT_FOUND:
        message = _not_found_message(error.resource, error.resource_id)
    elif category in _CATEGORY_MESSAGES:
        message = _CATEGORY_MESSAGES[category]

    details: Mapping[str, Any] = error.details or {}
    if category == ErrorCategory.VALIDATION and error.cause is not None:
        cause_details = _safe_attr(error.cause, "details")
        if isinstance(cause_details, Mapping):
            details = cause_details

    return ClassifiedError(
        category=category.value,
        message=message,
        code=error.code_value,
        status_code=error.status_code,
        resource=error.resource,
        resource_id=error.resource_id,
        request_id=error.request_id,
        details=MappingProxyType(dict(details)),
        cause=error,
    )


def _safe_str(error: BaseException) -> str:
    try:
        return str(error)
    except Exception:
        return type(error).__name__


def _classify_http_like(failure: HttpLikeFailure) -> ClassifiedError:
    error = failure.error
    return ClassifiedError(
        category=failure.code or type(error).__name__,
        message=_safe_str(error),
        code=failure.code,
        status_code=failure.status_code,
        cause=error,
    )


def _classify_plain_object(failure: PlainObjectFailure) -> ClassifiedError:
    payload = failure.payload
    error = payload.get("error")
    message = error if isinstance(error, str) and error else payload.get("message")
    code = payload.get("code")
    code = str(code) if code else None
    return ClassifiedError(
        category=code or UNKNOWN_CATEGORY,
        message=str(message),
        code=code,
        status_code=_payload_status(payload),
        cause=payload,
    )


def classify(raw: Any) -> ClassifiedError:
    """
    Classify any raised value.

    Priority order:
        1. MidazError: fields copied verbatim, with fixed messages for
           not-found, authentication, authorization and rate-limit errors
        2. Other exceptions: message from str(), category from an attached
           ``code`` attribute or the exception class name
        3. Mappings with an ``error`` or ``message`` string
        4. Strings
        5. Anything else, including None

    Never raises.
    """
    failure = adapt_failure(raw)

    if isinstance(failure, DomainFailure):
        return _classify_domain(failure.error)
    if isinstance(failure, HttpLikeFailure):
        return _classify_http_like(failure)
    if isinstance(failure, PlainObjectFailure):
        return _classify_plain_object(failure)
    if isinstance(failure, StringFailure):
        return ClassifiedError(
            category=UNKNOWN_CATEGORY, message=failure.text, cause=failure.text
        )
    return ClassifiedError(
        category=UNKNOWN_CATEGORY, message=UNKNOWN_MESSAGE, cause=failure.value
    )


# =============================================================================
# User-Facing Messages
# =============================================================================

USER_MESSAGES = {
    ErrorCategory.VALIDATION.value: "The provided data is invalid. Please check your input and try again.",
    ErrorCategory.AUTHENTICATION.value: "Authentication failed. Please check your credentials.",
    ErrorCategory.AUTHORIZATION.value: "You don't have permission to perform this action.",
    ErrorCategory.CONFLICT.value: "This operation conflicts with the current state. The resource may have been modified.",
    ErrorCategory.LIMIT_EXCEEDED.value: "Rate limit exceeded. Please try again later.",
    ErrorCategory.TIMEOUT.value: "The operation timed out. Please try again.",
    ErrorCategory.NETWORK.value: "Network error. Please check your connection and try again.",
    ErrorCategory.INTERNAL.value: "An internal server error occurred. Please try again later.",
}


def user_friendly_message(classified: ClassifiedError) -> str:
    """
    Return one short, non-technical sentence describing the failure.

    Unknown categories fall back to the original message when it is short
    enough to show, otherwise to a generic sentence.
    """
    category = classified.category

    if category == ErrorCategory.NOT_FOUND.value:
        return classified.message

    if category == ErrorCategory.UNPROCESSABLE.value:
        if "insufficient" in classified.message:
            return "Insufficient funds to complete this transaction."
        return "The request could not be processed. Please check your input."

    if category in USER_MESSAGES:
        return USER_MESSAGES[category]

    if len(classified.message) > MAX_USER_MESSAGE_LENGTH:
        return GENERIC_USER_MESSAGE
    return classified.message


# =============================================================================
# Transaction Error Buckets
# =============================================================================

_CODE_BUCKETS = {
    ErrorCode.INSUFFICIENT_BALANCE.value: TransactionErrorCategory.INSUFFICIENT_FUNDS,
    ErrorCode.ASSET_MISMATCH.value: TransactionErrorCategory.ASSET_MISMATCH,
    ErrorCode.IDEMPOTENCY_ERROR.value: TransactionErrorCategory.DUPLICATE_TRANSACTION,
}

# Checked before keywords; UNPROCESSABLE is deliberately absent since it
# covers several business failures that only the message tells apart.
_CATEGORY_BUCKETS = {
    ErrorCategory.VALIDATION.value: TransactionErrorCategory.INVALID_TRANSACTION,
    ErrorCategory.NOT_FOUND.value: TransactionErrorCategory.ACCOUNT_NOT_FOUND,
    ErrorCategory.AUTHORIZATION.value: TransactionErrorCategory.UNAUTHORIZED_TRANSACTION,
}


def _eligibility_bucket(message: str) -> TransactionErrorCategory:
    if "frozen" in message:
        return TransactionErrorCategory.ACCOUNT_FROZEN
    if "inactive" in message:
        return TransactionErrorCategory.ACCOUNT_INACTIVE
    return TransactionErrorCategory.ACCOUNT_INELIGIBLE


def _keyword_bucket(message: str) -> TransactionErrorCategory | None:
    """Case-sensitive keyword match on the classified message."""
    if "insufficient" in message:
        return TransactionErrorCategory.INSUFFICIENT_FUNDS
    if "frozen" in message:
        return TransactionErrorCategory.ACCOUNT_FROZEN
    if "inactive" in message:
        return TransactionErrorCategory.ACCOUNT_INACTIVE
    if "duplicate" in message or "idempotency" in message:
        return TransactionErrorCategory.DUPLICATE_TRANSACTION
    if "limit" in message and "exceed" in message:
        return TransactionErrorCategory.LIMIT_EXCEEDED
    if "asset" in message and "mismatch" in message:
        return TransactionErrorCategory.ASSET_MISMATCH
    if "balance" in message and ("negative" in message or "below zero" in message):
        return TransactionErrorCategory.NEGATIVE_BALANCE
    return None


def categorize_transaction_error(classified: ClassifiedError) -> TransactionErrorCategory:
    """
    Bucket a failed transaction submission.

    Order: error code, then VALIDATION/NOT_FOUND/AUTHORIZATION categories,
    then message keywords, then the UNPROCESSABLE and LIMIT_EXCEEDED
    categories. Falls back to TRANSACTION_FAILED.
    """
    code = classified.code
    message = classified.message

    if code == ErrorCode.ACCOUNT_ELIGIBILITY_ERROR.value:
        return _eligibility_bucket(message)
    if code in _CODE_BUCKETS:
        return _CODE_BUCKETS[code]

    if classified.category in _CATEGORY_BUCKETS:
        return _CATEGORY_BUCKETS[classified.category]

    bucket = _keyword_bucket(message)
    if bucket is not None:
        return bucket

    if classified.category == ErrorCategory.UNPROCESSABLE.value:
        return TransactionErrorCategory.TRANSACTION_REJECTED
    if classified.category == ErrorCategory.LIMIT_EXCEEDED.value:
        return TransactionErrorCategory.LIMIT_EXCEEDED

    return TransactionErrorCategory.TRANSACTION_FAILED


def is_duplicate_transaction(classified: ClassifiedError) -> bool:
    return (
        categorize_transaction_error(classified)
        == TransactionErrorCategory.DUPLICATE_TRANSACTION
    )


def is_insufficient_funds(classified: ClassifiedError) -> bool:
    return (
        categorize_transaction_error(classified)
        == TransactionErrorCategory.INSUFFICIENT_FUNDS
    )


def is_transient(classified: ClassifiedError) -> bool:
    """Whether the category usually clears up on its own (network, timeout, rate limit)."""
    return classified.category in (
        ErrorCategory.NETWORK.value,
        ErrorCategory.TIMEOUT.value,
        ErrorCategory.LIMIT_EXCEEDED.value,
    )


RECOVERY_RECOMMENDATIONS = {
    TransactionErrorCategory.INSUFFICIENT_FUNDS: "Ensure the source account has sufficient funds before retrying the transaction.",
    TransactionErrorCategory.DUPLICATE_TRANSACTION: "This transaction was already processed. No action needed.",
    TransactionErrorCategory.ACCOUNT_FROZEN: "Contact support to unfreeze the account before retrying.",
    TransactionErrorCategory.ACCOUNT_INACTIVE: "Activate the account before retrying this transaction.",
    TransactionErrorCategory.ACCOUNT_INELIGIBLE: "Check the account status before retrying this transaction.",
    TransactionErrorCategory.ASSET_MISMATCH: "Ensure both accounts use the same asset type or add a currency conversion step.",
    TransactionErrorCategory.NEGATIVE_BALANCE: "Ensure the transaction will not result in a negative balance.",
    TransactionErrorCategory.LIMIT_EXCEEDED: "Wait for the rate limit to reset before retrying, or reduce the frequency of requests.",
    TransactionErrorCategory.TRANSACTION_REJECTED: "Review the transaction details and correct any issues before retrying.",
    TransactionErrorCategory.UNAUTHORIZED_TRANSACTION: "Ensure you have the necessary permissions for this transaction.",
    TransactionErrorCategory.ACCOUNT_NOT_FOUND: "Verify the account IDs are correct and the accounts exist.",
}


def recovery_recommendation(classified: ClassifiedError) -> str:
    """Suggest what the caller should do next."""
    bucket = categorize_transaction_error(classified)
    if bucket in RECOVERY_RECOMMENDATIONS:
        return RECOVERY_RECOMMENDATIONS[bucket]
    if is_transient(classified):
        return "This issue may be temporary. Please try again."
    return "Review the operation details and correct any issues before retrying."


def technical_details(classified: ClassifiedError) -> str:
    """One-line summary for logs, e.g. "[not_found/not_found] ... (Resource: account/a1)"."""
    if classified.is_domain_error:
        text = f"[{classified.category}/{classified.code}] {classified.message}"
        if classified.resource:
            text += f" (Resource: {classified.resource}"
            if classified.resource_id:
                text += f"/{classified.resource_id}"
            text += ")"
        if classified.request_id:
            text += f" (Request ID: {classified.request_id})"
        return text
    if classified.status_code is not None:
        return f"[{classified.status_code}] {classified.message}"
    return classified.message


@dataclass(frozen=True)
class ErrorReport:
    """Everything an application needs to present and log one failure."""

    classified: ClassifiedError
    transaction_category: TransactionErrorCategory
    user_message: str
    technical_details: str
    recovery_recommendation: str
    is_transient: bool

    @property
    def should_show_user(self) -> bool:
        # Duplicates already committed once; not a failure from the user's view
        return (
            self.transaction_category
            != TransactionErrorCategory.DUPLICATE_TRANSACTION
        )


def describe_error(raw: Any) -> ErrorReport:
    """Classify a raised value and derive every presentation field at once."""
    classified = classify(raw)
    return ErrorReport(
        classified=classified,
        transaction_category=categorize_transaction_error(classified),
        user_message=user_friendly_message(classified),
        technical_details=technical_details(classified),
        recovery_recommendation=recovery_recommendation(classified),
        is_transient=is_transient(classified),
    )


__all__ = [
    "ClassifiedError",
    "DomainFailure",
    "HttpLikeFailure",
    "PlainObjectFailure",
    "StringFailure",
    "UnknownFailure",
    "FailureShape",
    "ErrorReport",
    "adapt_failure",
    "classify",
    "user_friendly_message",
    "categorize_transaction_error",
    "is_duplicate_transaction",
    "is_insufficient_funds",
    "is_transient",
    "recovery_recommendation",
    "technical_details",
    "describe_error",
]
