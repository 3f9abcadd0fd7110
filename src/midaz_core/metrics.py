"""
Prometheus metrics for resilient operation execution.

Focused on essential metrics:
- Retry attempts and their outcome per operation
- Backoff delays
- Transaction outcomes (success / duplicate / failed)
- Pages and items fetched by paginators

Metrics live on the default prometheus_client registry.
"""

from prometheus_client import Counter, Histogram

# =============================================================================
# Retry Metrics
# =============================================================================

retry_attempts_total = Counter(
    "midaz_retry_attempts_total",
    "Attempts made by the retry policy, by outcome",
    ["operation", "outcome"],
)

retry_delay_seconds = Histogram(
    "midaz_retry_delay_seconds",
    "Backoff delay slept before a retry",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

# =============================================================================
# Transaction Metrics
# =============================================================================

transaction_outcomes_total = Counter(
    "midaz_transaction_outcomes_total",
    "Transaction submissions by final outcome",
    ["status"],
)

transaction_attempts = Histogram(
    "midaz_transaction_attempts",
    "Attempts needed per transaction submission",
    buckets=(1, 2, 3, 4, 5, 8, 10),
)

# =============================================================================
# Pagination Metrics
# =============================================================================

paginator_pages_total = Counter(
    "midaz_paginator_pages_total",
    "Pages fetched by cursor paginators",
    ["resource"],
)

paginator_items_total = Counter(
    "midaz_paginator_items_total",
    "Items fetched by cursor paginators",
    ["resource"],
)


def record_retry_attempt(operation: str, outcome: str) -> None:
    """
    Record one attempt.

    Args:
        operation: Operation name
        outcome: "success", "retry", "exhausted" or "not_retryable"
    """
    retry_attempts_total.labels(operation=operation, outcome=outcome).inc()


def record_retry_delay(operation: str, delay_seconds: float) -> None:
    retry_delay_seconds.labels(operation=operation).observe(delay_seconds)


def record_transaction_outcome(status: str, attempts: int) -> None:
    transaction_outcomes_total.labels(status=status).inc()
    if attempts > 0:
        transaction_attempts.observe(attempts)


def record_page_fetched(resource: str, item_count: int) -> None:
    paginator_pages_total.labels(resource=resource).inc()
    paginator_items_total.labels(resource=resource).inc(item_count)


__all__ = [
    "retry_attempts_total",
    "retry_delay_seconds",
    "transaction_outcomes_total",
    "transaction_attempts",
    "paginator_pages_total",
    "paginator_items_total",
    "record_retry_attempt",
    "record_retry_delay",
    "record_transaction_outcome",
    "record_page_fetched",
]
