"""
Resilience patterns module.

Components:
    - RetryOptions / RetryPolicy: Bounded exponential backoff with jitter
    - @with_retry decorator: Run an async function under a RetryPolicy
    - TransactionExecutor: Idempotency-aware transaction submission
    - VerificationOptions: Post-failure polling for committed transactions
"""

from .retry import (
    DEFAULT_RETRY_OPTIONS,
    DEFAULT_RETRYABLE_STATUS_CODES,
    RetryHook,
    RetryOptions,
    RetryPolicy,
    with_retry,
)
from .transaction import (
    BatchSummary,
    TransactionExecutor,
    TransactionOutcome,
    TransactionResult,
    VerificationOptions,
    create_transaction_verification,
    summarize,
)

__all__ = [
    # Retry
    "DEFAULT_RETRY_OPTIONS",
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "RetryHook",
    "RetryOptions",
    "RetryPolicy",
    "with_retry",
    # Transactions
    "BatchSummary",
    "TransactionExecutor",
    "TransactionOutcome",
    "TransactionResult",
    "VerificationOptions",
    "create_transaction_verification",
    "summarize",
]
