"""
Structured logging module.

Provides JSON logging with ledger context propagation.
"""

from midaz_core.logging.context import (
    bind_log_context,
    clear_log_context,
    get_log_context,
    set_log_context,
    unbind_log_context,
)
from midaz_core.logging.context_managers import (
    LogContext,
    OperationLog,
    log_operation,
)
from midaz_core.logging.formatters import ConsoleFormatter, JSONFormatter
from midaz_core.logging.setup import setup_logging
from midaz_core.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "bind_log_context",
    "unbind_log_context",
    # Context Managers
    "LogContext",
    "OperationLog",
    "log_operation",
    # Utilities
    "log_with_context",
    "log_exception",
]
