"""
Idempotency-aware transaction submission.

Wraps RetryPolicy for ledger transaction submission and reports one of
three outcomes instead of raising:

- SUCCESS: the submission returned a transaction
- DUPLICATE: the service rejected the submission because its idempotency
  key was already committed. The funds moved exactly once, so this is
  counted alongside success, but no transaction object is available.
- FAILED: any other failure, with the classified error attached

With VerificationOptions, a FAILED submission is polled once more through a
caller-supplied lookup and reported as a verified SUCCESS if the
transaction turns out to exist.

Turning DUPLICATE failures into a result is the one place errors are
converted rather than propagated. Cancellation still propagates.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from midaz_core import metrics
from midaz_core.errors.classifiers import (
    ClassifiedError,
    categorize_transaction_error,
    classify,
)
from midaz_core.logging import LogContext, log_operation
from midaz_core.resilience.retry import RetryPolicy
from midaz_core.telemetry import get_sink
from midaz_core.types import ObservabilitySink, TransactionErrorCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionOutcome(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionResult(Generic[T]):
    """
    Outcome of one transaction submission.

    Attributes:
        status: SUCCESS, DUPLICATE or FAILED
        transaction: The created transaction, only set on a direct SUCCESS
        error: The classified failure, set on DUPLICATE, FAILED and
               verified SUCCESS
        attempts: Number of times submit was invoked
        verified: SUCCESS established by polling after submit failed
    """

    status: TransactionOutcome
    transaction: T | None = None
    error: ClassifiedError | None = None
    attempts: int = 0
    verified: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == TransactionOutcome.SUCCESS

    @property
    def committed(self) -> bool:
        """True when the financial effect is known to have been applied once."""
        return self.status in (TransactionOutcome.SUCCESS, TransactionOutcome.DUPLICATE)


@dataclass(frozen=True)
class BatchSummary:
    succeeded: int
    duplicates: int
    failed: int

    @property
    def total(self) -> int:
        return self.succeeded + self.duplicates + self.failed


@dataclass(frozen=True)
class VerificationOptions:
    """
    Polling used after a failed submit to check whether it committed anyway.

    A timeout can hide a transaction the ledger did apply. When ``verify``
    returns True the result is reported as a verified SUCCESS.

    Attributes:
        verify: Async check returning True once the transaction exists;
                exceptions count as False
        max_attempts: Number of checks
        delay_ms: Pause between checks
    """

    verify: Callable[[], Awaitable[bool]]
    max_attempts: int = 3
    delay_ms: float = 1000

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {self.delay_ms}")


def create_transaction_verification(
    check: Callable[[], Awaitable[Any]],
) -> Callable[[], Awaitable[bool]]:
    """
    Wrap a lookup so that any failure reads as "not committed".

    Usage:
        verify = create_transaction_verification(
            lambda: client.get_transaction(org, ledger, tx_id)
        )
        result = await executor.execute_transaction(
            submit, verification=VerificationOptions(verify)
        )
    """

    async def verify() -> bool:
        try:
            return bool(await check())
        except Exception as e:
            logger.debug(
                "Transaction verification lookup failed: %s",
                str(e)[:200],
                extra={"error_type": type(e).__name__},
            )
            return False

    return verify


def summarize(results: Iterable[TransactionResult]) -> BatchSummary:
    results = list(results)
    return BatchSummary(
        succeeded=sum(1 for r in results if r.status == TransactionOutcome.SUCCESS),
        duplicates=sum(1 for r in results if r.status == TransactionOutcome.DUPLICATE),
        failed=sum(1 for r in results if r.status == TransactionOutcome.FAILED),
    )


class TransactionExecutor:
    """
    Submits transactions through a RetryPolicy and never raises on failure.

    Args:
        policy: Retry policy to submit under (defaults to RetryPolicy())
        sink: Observability sink for spans (defaults to the module sink)
        metrics_enabled: Record Prometheus outcome metrics
        sleep: Awaitable sleep taking seconds, used between verification checks

    Usage:
        executor = TransactionExecutor(policy)
        result = await executor.execute_transaction(
            lambda: client.create_transaction(org, ledger, tx_input)
        )
        if result.status is TransactionOutcome.FAILED:
            print(user_friendly_message(result.error))
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sink: ObservabilitySink | None = None,
        metrics_enabled: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._policy = policy or RetryPolicy()
        self._sink = sink
        self._metrics_enabled = metrics_enabled
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def sink(self) -> ObservabilitySink:
        return self._sink if self._sink is not None else get_sink()

    async def execute_transaction(
        self,
        submit: Callable[[], Awaitable[T]],
        *,
        max_retries: int | None = None,
        operation_name: str = "create_transaction",
        verification: VerificationOptions | None = None,
    ) -> TransactionResult[T]:
        """
        Submit one transaction.

        Args:
            submit: Closure performing the remote submission
            max_retries: Override the policy's max_retries for this call
            operation_name: Name used in logs, spans and metrics
            verification: Poll for the transaction when the submit fails

        Returns:
            TransactionResult; failures are reported, not raised
        """
        policy = self._policy
        if max_retries is not None and max_retries != policy.options.max_retries:
            policy = policy.with_options(max_retries=max_retries)

        attempts = 0

        async def counted_submit() -> T:
            nonlocal attempts
            attempts += 1
            return await submit()

        span = self.sink.start_span(
            "transaction.execute", {"transaction.operation": operation_name}
        )
        try:
            try:
                transaction = await policy.execute(
                    counted_submit, operation_name=operation_name
                )
            except Exception as e:
                result = self._failure_result(e, attempts, operation_name)
                if (
                    verification is not None
                    and result.status == TransactionOutcome.FAILED
                ):
                    result = await self._verify(result, verification, operation_name)
            else:
                result = TransactionResult(
                    status=TransactionOutcome.SUCCESS,
                    transaction=transaction,
                    attempts=attempts,
                )

            span.set_attribute("transaction.status", result.status.value)
            span.set_attribute("transaction.attempts", attempts)
            if verification is not None:
                span.set_attribute("transaction.verified", result.verified)
            if result.status == TransactionOutcome.FAILED:
                span.set_attribute("transaction.error_category", result.error.category)
                span.set_status("error", result.error.message)
            else:
                span.set_status("ok")
        except BaseException as e:
            # Cancellation is the only thing that reaches here
            span.record_exception(e)
            span.set_status("error", str(e) or type(e).__name__)
            raise
        finally:
            span.end()

        if self._metrics_enabled:
            metrics.record_transaction_outcome(result.status.value, attempts)
        return result

    def _failure_result(
        self, error: Exception, attempts: int, operation_name: str
    ) -> TransactionResult:
        classified = classify(error)
        bucket = categorize_transaction_error(classified)

        if bucket == TransactionErrorCategory.DUPLICATE_TRANSACTION:
            logger.info(
                "Transaction already committed for %s, reporting duplicate",
                operation_name,
                extra={
                    "operation": operation_name,
                    "attempt": attempts,
                    "transaction_status": TransactionOutcome.DUPLICATE.value,
                    "error_category": classified.category,
                    "error_code": classified.code,
                },
            )
            return TransactionResult(
                status=TransactionOutcome.DUPLICATE, error=classified, attempts=attempts
            )

        logger.warning(
            "Transaction failed for %s: %s",
            operation_name,
            classified.message[:200],
            extra={
                "operation": operation_name,
                "attempt": attempts,
                "transaction_status": TransactionOutcome.FAILED.value,
                "transaction_error": bucket.value,
                "error_category": classified.category,
                "error_code": classified.code,
                "status_code": classified.status_code,
            },
        )
        return TransactionResult(
            status=TransactionOutcome.FAILED, error=classified, attempts=attempts
        )

    async def _verify(
        self,
        failed: TransactionResult,
        verification: VerificationOptions,
        operation_name: str,
    ) -> TransactionResult:
        for check in range(1, verification.max_attempts + 1):
            try:
                committed = bool(await verification.verify())
            except Exception as e:
                logger.debug(
                    "Verification check %d for %s raised: %s",
                    check,
                    operation_name,
                    str(e)[:200],
                    extra={"operation": operation_name, "error_type": type(e).__name__},
                )
                committed = False

            if committed:
                logger.info(
                    "Transaction for %s verified as committed after failed submit",
                    operation_name,
                    extra={
                        "operation": operation_name,
                        "attempt": failed.attempts,
                        "verification_attempt": check,
                        "error_category": failed.error.category,
                    },
                )
                return TransactionResult(
                    status=TransactionOutcome.SUCCESS,
                    error=failed.error,
                    attempts=failed.attempts,
                    verified=True,
                )

            if check < verification.max_attempts:
                await self._sleep(verification.delay_ms / 1000)

        logger.warning(
            "Transaction for %s not found after %d verification checks",
            operation_name,
            verification.max_attempts,
            extra={"operation": operation_name, "attempt": failed.attempts},
        )
        return failed

    async def execute_batch(
        self,
        submits: Iterable[Callable[[], Awaitable[T]]],
        *,
        max_retries: int | None = None,
        operation_name: str = "create_transaction",
    ) -> list[TransactionResult[T]]:
        """
        Submit transactions one after another, continuing past failures.

        Results are returned in submission order.
        """
        results: list[TransactionResult[T]] = []
        with LogContext(batch_id=uuid.uuid4().hex), log_operation(
            logger, "transaction_batch", operation_name=operation_name
        ):
            for submit in submits:
                results.append(
                    await self.execute_transaction(
                        submit, max_retries=max_retries, operation_name=operation_name
                    )
                )

        summary = summarize(results)
        logger.info(
            "Transaction batch complete: %d succeeded, %d duplicates, %d failed",
            summary.succeeded,
            summary.duplicates,
            summary.failed,
            extra={
                "operation": operation_name,
                "batch_size": summary.total,
                "records_succeeded": summary.succeeded,
                "records_duplicated": summary.duplicates,
                "records_failed": summary.failed,
            },
        )
        return results


__all__ = [
    "TransactionOutcome",
    "TransactionResult",
    "BatchSummary",
    "TransactionExecutor",
    "VerificationOptions",
    "create_transaction_verification",
    "summarize",
]
