"""Context managers for structured logging."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from midaz_core.logging.context import bind_log_context, unbind_log_context
from midaz_core.logging.utilities import log_exception, log_with_context


class LogContext:
    """
    Context manager for temporary log context.

    Values set inside the block are undone on exit, including values set
    by nested set_log_context() calls on the same fields.

    Usage:
        with LogContext(organization_id=org_id, ledger_id=ledger_id):
            # All logs in this block carry organization_id and ledger_id
            await executor.execute_transaction(submit)
    """

    def __init__(
        self,
        organization_id: Optional[str] = None,
        ledger_id: Optional[str] = None,
        request_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ):
        self.fields = {
            "organization_id": organization_id,
            "ledger_id": ledger_id,
            "request_id": request_id,
            "batch_id": batch_id,
        }
        self._tokens: Dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = bind_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        unbind_log_context(self._tokens)
        self._tokens = {}
        return False


@dataclass
class OperationLog:
    """Handle yielded by log_operation(); collects fields for the final record."""

    operation: str
    context: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    def add_context(self, **kwargs: Any) -> None:
        """Add fields mid-operation (item counts, cursors, etc)."""
        self.context.update(kwargs)

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 2)


@contextmanager
def log_operation(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    slow_threshold_ms: Optional[float] = 1000.0,
    **context: Any,
) -> Iterator[OperationLog]:
    """
    Log one "Completed:" or "Failed:" record for a block of ledger work.

    Completions slower than slow_threshold_ms are raised to INFO. Failures
    are logged with their error category and re-raised. Cancellation is not
    logged as a failure.

    Usage:
        with log_operation(logger, "listAccounts", resource="accounts") as op:
            items = await paginator.get_all_items()
            op.add_context(item_count=len(items))
    """
    op = OperationLog(operation, dict(context))
    try:
        yield op
    except Exception as e:
        log_exception(
            logger,
            e,
            f"Failed: {operation}",
            duration_ms=op.elapsed_ms,
            operation=operation,
            **op.context,
        )
        raise

    duration_ms = op.elapsed_ms
    if slow_threshold_ms and duration_ms > slow_threshold_ms:
        level = max(level, logging.INFO)
    log_with_context(
        logger,
        level,
        f"Completed: {operation}",
        duration_ms=duration_ms,
        operation=operation,
        **op.context,
    )
