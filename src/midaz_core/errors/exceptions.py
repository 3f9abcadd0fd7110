"""
Domain exception hierarchy for the ledger client.

Every failure reported by the ledger service is surfaced as a MidazError
subclass carrying the category, error code and HTTP status code that the
classifier and retry policy use for their decisions.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from midaz_core.types import ErrorCategory, ErrorCode


class MidazError(Exception):
    """
    Base exception for all ledger service errors.

    Attributes:
        message: Human-readable error description
        category: Broad error classification
        code: Fine-grained error code
        operation: Operation that failed (e.g. "createTransaction")
        resource: Resource type involved (e.g. "account")
        resource_id: Identifier of the resource involved
        status_code: HTTP status code reported by the service, if any
        request_id: Server-side request identifier for support tickets
        details: Extra structured details from the response body
        cause: Original exception if wrapping
    """

    category: ErrorCategory = ErrorCategory.INTERNAL
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_status_code: int | None = None

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        code: ErrorCode | str | None = None,
        operation: str | None = None,
        resource: str | None = None,
        resource_id: str | None = None,
        status_code: int | None = None,
        request_id: str | None = None,
        details: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        self.message = message
        if category is not None:
            self.category = category
        if code is not None:
            self.code = code
        self.operation = operation
        self.resource = resource
        self.resource_id = resource_id
        self.status_code = (
            status_code if status_code is not None else self.default_status_code
        )
        self.request_id = request_id
        self.details = dict(details) if details else {}
        self.cause = cause
        super().__init__(message)

    @property
    def code_value(self) -> str:
        return self.code.value if isinstance(self.code, ErrorCode) else str(self.code)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(category={self.category.value!r}, "
            f"code={self.code_value!r}, status_code={self.status_code!r}, "
            f"message={self.message!r})"
        )


# =============================================================================
# Client Errors (4xx)
# =============================================================================


class ValidationError(MidazError):
    """Request payload or parameters were rejected (400)."""

    category = ErrorCategory.VALIDATION
    code = ErrorCode.VALIDATION_ERROR
    default_status_code = 400


class NotFoundError(MidazError):
    """Referenced entity does not exist (404)."""

    category = ErrorCategory.NOT_FOUND
    code = ErrorCode.NOT_FOUND
    default_status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        message: str | None = None,
        **kwargs: Any,
    ):
        if message is None:
            message = (
                f"{resource} not found: {resource_id}"
                if resource_id
                else f"{resource} not found"
            )
        super().__init__(
            message, resource=resource, resource_id=resource_id, **kwargs
        )


class AuthenticationError(MidazError):
    """Missing, expired or invalid credentials (401)."""

    category = ErrorCategory.AUTHENTICATION
    code = ErrorCode.AUTHENTICATION_ERROR
    default_status_code = 401


class AuthorizationError(MidazError):
    """Credentials are valid but lack permission (403)."""

    category = ErrorCategory.AUTHORIZATION
    code = ErrorCode.PERMISSION_ERROR
    default_status_code = 403


class ConflictError(MidazError):
    """Request conflicts with the current state of the resource (409)."""

    category = ErrorCategory.CONFLICT
    code = ErrorCode.ALREADY_EXISTS
    default_status_code = 409


class IdempotencyError(ConflictError):
    """Idempotency key was already used by a committed request (409)."""

    code = ErrorCode.IDEMPOTENCY_ERROR


class RateLimitError(MidazError):
    """Rate limited (429) - should back off."""

    category = ErrorCategory.LIMIT_EXCEEDED
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    default_status_code = 429

    def __init__(self, message: str, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after  # Seconds to wait if provided


# =============================================================================
# Business Rule Errors (422)
# =============================================================================


class UnprocessableError(MidazError):
    """Request was well-formed but violates a business rule (422)."""

    category = ErrorCategory.UNPROCESSABLE
    code = ErrorCode.VALIDATION_ERROR
    default_status_code = 422


class InsufficientBalanceError(UnprocessableError):
    """Source account does not hold enough funds."""

    code = ErrorCode.INSUFFICIENT_BALANCE


class AccountEligibilityError(UnprocessableError):
    """Account cannot take part in the transaction (frozen, inactive, ...)."""

    code = ErrorCode.ACCOUNT_ELIGIBILITY_ERROR


class AssetMismatchError(UnprocessableError):
    """Accounts in the transaction hold different assets."""

    code = ErrorCode.ASSET_MISMATCH


# =============================================================================
# Transport and Server Errors
# =============================================================================


class RequestTimeoutError(MidazError):
    """Request or upstream gateway timed out."""

    category = ErrorCategory.TIMEOUT
    code = ErrorCode.TIMEOUT
    default_status_code = 504


class NetworkError(MidazError):
    """Connection could not be established or was dropped mid-request."""

    category = ErrorCategory.NETWORK
    code = ErrorCode.NETWORK_ERROR


class InternalError(MidazError):
    """Server-side failure (5xx)."""

    category = ErrorCategory.INTERNAL
    code = ErrorCode.INTERNAL_ERROR
    default_status_code = 500


# =============================================================================
# HTTP Response Mapping
# =============================================================================

# Plural path segment, e.g. "accounts" in /organizations/o1/accounts/a1
_PLURAL_SEGMENT = re.compile(r"^[a-z-]+s$")


def _extract_error_body(body: Any) -> tuple[str | None, dict[str, Any]]:
    """Pull an error message and detail dict out of a response body."""
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, str) and error:
            return error, {}
        if isinstance(error, Mapping):
            message = error.get("message")
            return (str(message) if message else None), dict(error)
        message = body.get("message")
        if message:
            return str(message), dict(body)
        return None, {}

    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")

    if isinstance(body, str) and body:
        try:
            parsed = json.loads(body)
        except ValueError:
            return (body if "error" in body.lower() else None), {}
        if isinstance(parsed, Mapping) and (
            parsed.get("error") or parsed.get("message")
        ):
            return _extract_error_body(parsed)

    return None, {}


def _resource_from_url(url: str) -> tuple[str | None, str | None]:
    """Guess resource type and id from a REST path like /accounts/<id>.

    The innermost collection wins, so .../ledgers/l1/accounts/a1 gives
    ("account", "a1").
    """
    path = url.split("?", 1)[0]
    parts = path.rstrip("/").split("/")
    for i in range(len(parts) - 2, -1, -1):
        if _PLURAL_SEGMENT.match(parts[i]) and parts[i + 1]:
            return parts[i][:-1], parts[i + 1]
    return None, None


def error_from_http_response(
    status_code: int,
    body: Any = None,
    method: str | None = None,
    url: str | None = None,
) -> MidazError:
    """
    Build a typed MidazError from a failed HTTP response.

    The service status code is always preserved on the returned error so the
    retry policy can make status-based decisions, even where several codes
    share one exception type (500/502/503 all map to InternalError).

    Args:
        status_code: HTTP status code of the response
        body: Parsed JSON body, raw text, or None
        method: HTTP method, appended to the message for context
        url: Request URL, appended to the message and used to infer
             the resource on 404 responses

    Returns:
        MidazError subclass matching the status code
    """
    message, details = _extract_error_body(body)
    message = message or "Request failed"
    if method and url:
        message = f"{message} ({method} {url})"

    common: dict[str, Any] = {
        "status_code": status_code,
        "operation": details.get("operation"),
        "request_id": details.get("requestId") or details.get("request_id"),
        "details": details or None,
    }
    resource = details.get("resource")
    resource_id = details.get("resourceId") or details.get("resource_id")
    detail_code = details.get("code")

    if status_code == 400:
        return ValidationError(
            message, resource=resource, resource_id=resource_id, **common
        )
    if status_code == 401:
        return AuthenticationError(message, **common)
    if status_code == 403:
        return AuthorizationError(
            message, resource=resource, resource_id=resource_id, **common
        )
    if status_code == 404:
        url_resource, url_resource_id = _resource_from_url(url) if url else (None, None)
        if url_resource and url_resource_id:
            return NotFoundError(url_resource, url_resource_id, message, **common)
        return NotFoundError("resource", "unknown", message, **common)
    if status_code == 409:
        error_class = (
            IdempotencyError
            if detail_code == ErrorCode.IDEMPOTENCY_ERROR.value
            else ConflictError
        )
        return error_class(
            message, resource=resource, resource_id=resource_id, **common
        )
    if status_code == 422:
        lowered = message.lower()
        if detail_code == ErrorCode.INSUFFICIENT_BALANCE.value or (
            "insufficient" in lowered and ("balance" in lowered or "funds" in lowered)
        ):
            return InsufficientBalanceError(message, **common)
        return UnprocessableError(
            message, resource=resource, resource_id=resource_id, **common
        )
    if status_code == 429:
        return RateLimitError(message, retry_after=details.get("retryAfter"), **common)
    if status_code == 504:
        return RequestTimeoutError(message, **common)
    if 400 <= status_code < 500:
        return ValidationError(
            message, resource=resource, resource_id=resource_id, **common
        )
    return InternalError(message, **common)


__all__ = [
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
]
