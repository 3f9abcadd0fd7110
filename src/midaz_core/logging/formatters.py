"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from midaz_core.errors.classifiers import classify
from midaz_core.logging.context import CONTEXT_FIELDS, get_log_context
from midaz_core.utils.json_serializers import json_serializer


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs to remove sensitive tokens before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "operation",
        "duration_ms",
        "service_name",
        # HTTP
        "http_method",
        "http_url",
        "status_code",
        # Errors
        "error_category",
        "error_code",
        "error_message",
        "error_type",
        "callback_error",
        # Retry
        "attempt",
        "max_retries",
        "delay_ms",
        # Transactions
        "transaction_status",
        "transaction_error",
        "batch_size",
        "records_succeeded",
        "records_duplicated",
        "records_failed",
        # Pagination
        "resource",
        "page_number",
        "item_count",
        "items_fetched",
        "has_more_pages",
        # Configuration
        "config_source",
    ]

    # Keep numeric fields numeric in the JSON output
    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_ms": float,
        "status_code": int,
        "attempt": int,
        "max_retries": int,
        "batch_size": int,
        "records_succeeded": int,
        "records_duplicated": int,
        "records_failed": int,
        "page_number": int,
        "item_count": int,
        "items_fetched": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = frozenset({"http_url"})

    # Query parameters whose values never reach the logs
    SENSITIVE_PARAMS_PATTERN = re.compile(
        r"([?&])(token|key|secret|password|auth|cursor)=[^&]*",
        re.IGNORECASE,
    )

    def _field_value(self, name: str, value: Any) -> Any:
        """Coerce numeric fields (None if that fails) and redact URLs."""
        expected_type = self.NUMERIC_FIELDS.get(name)
        if expected_type is not None:
            try:
                return expected_type(value)
            except (ValueError, TypeError):
                return None
        if name in self.URL_FIELDS and isinstance(value, str):
            return self.SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", value)
        return value

    @staticmethod
    def _exception_entry(record: logging.LogRecord, stacktrace: str) -> dict[str, Any]:
        exc_type, exc_value, _ = record.exc_info
        entry: dict[str, Any] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "stacktrace": stacktrace,
        }
        if exc_value is not None:
            entry["category"] = classify(exc_value).category
        return entry

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a single JSON line."""
        created = datetime.fromtimestamp(record.created, UTC)
        log_entry: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_context = get_log_context()
        for name in (*CONTEXT_FIELDS, "otel_trace_id", "otel_span_id"):
            if log_context.get(name):
                log_entry[name] = log_context[name]

        if record.levelno == logging.DEBUG or record.levelno >= logging.ERROR:
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        for name in self.EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = self._field_value(name, value)

        if record.exc_info:
            log_entry["exception"] = self._exception_entry(
                record, self.formatException(record.exc_info)
            )

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        return f"{created} - {level_name} - {record.name}"

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        def lookup(name: str) -> str:
            return getattr(record, name, None) or log_context.get(name) or ""

        operation = getattr(record, "operation", None)
        ledger_id = lookup("ledger_id")
        batch_id = lookup("batch_id")
        request_id = lookup("request_id")

        tags = []
        if operation:
            tags.append(f"[{operation}]")
        if ledger_id:
            tags.append(f"[ledger:{ledger_id}]")
        if batch_id:
            tags.append(f"[batch:{batch_id[:8]}]")
        if request_id:
            tags.append(f"[req:{request_id[:8]}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, record)
        tags = self._build_tags(record, log_context)

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if tags:
            return f"{prefix} - {' '.join(tags)} {message}"

        return f"{prefix} - {message}"
