"""
Transport error classification for HTTP calls to the ledger service.

Maps aiohttp and asyncio exceptions raised by the transport into the typed
MidazError hierarchy, so the retry policy can make status-based decisions
on them. Used at the boundary where a remote call closure is built.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

import aiohttp

from midaz_core.errors.exceptions import (
    MidazError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    error_from_http_response,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retry_after_seconds(headers: Any) -> float | None:
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


class TransportErrorClassifier:
    """
    Translate transport exceptions into MidazError.

    Anything that is not a recognised transport failure is returned
    unchanged, so callers can always raise the result.
    """

    @staticmethod
    def classify_response_error(
        error: aiohttp.ClientResponseError, body: Any = None
    ) -> MidazError:
        """
        Classify a non-2xx response.

        Args:
            error: The aiohttp response error
            body: Decoded response body if the caller read it

        Returns:
            MidazError subclass matching the status code
        """
        method = None
        url = None
        if error.request_info is not None:
            method = error.request_info.method
            url = str(error.request_info.url)

        classified = error_from_http_response(
            error.status, body if body is not None else error.message, method, url
        )
        classified.cause = error

        if isinstance(classified, RateLimitError) and classified.retry_after is None:
            classified.retry_after = _retry_after_seconds(error.headers)

        return classified

    @staticmethod
    def classify_timeout(error: BaseException, operation: str | None = None) -> MidazError:
        return RequestTimeoutError(
            f"Request timed out: {error}" if str(error) else "Request timed out",
            operation=operation,
            cause=error,
        )

    @staticmethod
    def classify_connection(error: BaseException, operation: str | None = None) -> MidazError:
        return NetworkError(
            f"Network error: {error}",
            operation=operation,
            cause=error,
        )

    @classmethod
    def classify(cls, error: BaseException, operation: str | None = None) -> BaseException:
        """
        Classify any exception raised by an HTTP call.

        Ordering matters: aiohttp.ServerTimeoutError is both a timeout and a
        connection error, and is treated as a timeout.
        """
        if isinstance(error, MidazError):
            return error

        if isinstance(error, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
            return cls.classify_timeout(error, operation)

        if isinstance(error, aiohttp.ClientResponseError):
            classified = cls.classify_response_error(error)
            if operation and classified.operation is None:
                classified.operation = operation
            return classified

        if isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)):
            return cls.classify_connection(error, operation)

        return error


def classify_transport_error(
    error: BaseException, operation: str | None = None
) -> BaseException:
    """Module-level shortcut for TransportErrorClassifier.classify."""
    return TransportErrorClassifier.classify(error, operation)


def translate_transport_errors(
    operation: str | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator that re-raises transport failures as MidazError.

    Usage:
        @translate_transport_errors("listAccounts")
        async def fetch_page(options):
            async with session.get(url, params=options) as resp:
                resp.raise_for_status()
                return await resp.json()
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        op_name = operation or func.__name__

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                classified = classify_transport_error(e, op_name)
                if classified is e:
                    raise
                request_info = getattr(e, "request_info", None)
                logger.debug(
                    "Transport error for %s classified as %s",
                    op_name,
                    type(classified).__name__,
                    extra={
                        "operation": op_name,
                        "error_type": type(e).__name__,
                        "status_code": getattr(classified, "status_code", None),
                        "http_method": getattr(request_info, "method", None),
                        "http_url": str(request_info.url) if request_info else None,
                    },
                )
                raise classified from e

        return wrapper

    return decorator


__all__ = [
    "TransportErrorClassifier",
    "classify_transport_error",
    "translate_transport_errors",
]
