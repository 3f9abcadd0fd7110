"""Logging utility functions."""

import logging
from typing import Any

from midaz_core.errors.classifiers import classify

# LogRecord attribute names; passing these in extra raises KeyError
_RESERVED_LOG_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

_MAX_ERROR_MESSAGE = 500


def _safe_extra(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if k not in _RESERVED_LOG_KEYS}


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Example:
        log_with_context(
            logger, logging.INFO, "Page fetched",
            operation="listAccounts",
            item_count=len(items),
        )
    """
    exc_info = kwargs.pop("exc_info", None)
    logger.log(level, msg, exc_info=exc_info, extra=_safe_extra(kwargs))


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log an exception with its classification.

    error_category, error_code, status_code and request_id come from
    classify(exc) unless given explicitly.

    Example:
        try:
            await client.create_transaction(...)
        except MidazError as e:
            log_exception(logger, e, "Transaction submission failed")
    """
    classified = classify(exc)
    kwargs.setdefault("error_category", classified.category)
    if classified.code is not None:
        kwargs.setdefault("error_code", classified.code)
    if classified.status_code is not None:
        kwargs.setdefault("status_code", classified.status_code)
    if classified.request_id:
        kwargs.setdefault("request_id", classified.request_id)

    error_msg = str(exc)
    if len(error_msg) > _MAX_ERROR_MESSAGE:
        error_msg = error_msg[:_MAX_ERROR_MESSAGE] + "..."
    kwargs["error_message"] = error_msg
    kwargs.setdefault("error_type", type(exc).__name__)

    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=_safe_extra(kwargs),
    )
