"""
Retry policy with bounded exponential backoff and additive jitter.

Retry decisions are deliberately narrow:
- MidazError with a status code in retryable_status_codes: retry
- Any other exception: fail immediately, re-raised untouched
- A custom retry_condition replaces the rule above and receives the raw
  exception
- asyncio.CancelledError is never caught, so cancellation always wins

Optional on_retry and on_exhausted hooks observe the run. Errors raised by a
hook are logged and dropped so the original failure is what the caller sees.

Attempt state lives on the call stack, so one RetryPolicy can be shared by
concurrent callers.
"""

import asyncio
import inspect
import logging
import math
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from functools import wraps
from typing import Any, TypeVar

from midaz_core import metrics
from midaz_core.errors.classifiers import classify
from midaz_core.errors.exceptions import MidazError
from midaz_core.telemetry import get_sink, traced_span
from midaz_core.types import ObservabilitySink, Span

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset(
    {408, 429, 500, 502, 503, 504}
)

# (error, attempt number) -> None or awaitable
RetryHook = Callable[[BaseException, int], Awaitable[None] | None]


def parse_status_codes(value: Any) -> frozenset[int]:
    """Accept an iterable of ints or a comma-separated string (from env/YAML)."""
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    return frozenset(int(code) for code in value)


@dataclass(frozen=True)
class RetryOptions:
    """
    Immutable retry configuration.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        initial_delay_ms: Base delay for attempt 0
        max_delay_ms: Cap applied before jitter
        retryable_status_codes: Status codes that make a MidazError retryable
        retry_condition: Optional predicate replacing the default rule; it
            receives the raw exception
        on_retry: Called with (error, retry_number) before each backoff sleep;
            may be sync or async
        on_exhausted: Called with (error, attempts) when a retryable error
            is still failing after the last retry; may be sync or async
    """

    max_retries: int = 3
    initial_delay_ms: float = 100
    max_delay_ms: float = 1000
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    retry_condition: Callable[[BaseException], bool] | None = field(
        default=None, compare=False
    )
    on_retry: RetryHook | None = field(default=None, compare=False)
    on_exhausted: RetryHook | None = field(default=None, compare=False)

    def __post_init__(self):
        """Coerce values from YAML/env vars and validate ranges."""
        object.__setattr__(self, "max_retries", int(self.max_retries))
        object.__setattr__(self, "initial_delay_ms", float(self.initial_delay_ms))
        object.__setattr__(self, "max_delay_ms", float(self.max_delay_ms))
        object.__setattr__(
            self,
            "retryable_status_codes",
            parse_status_codes(self.retryable_status_codes),
        )

        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay_ms <= 0:
            raise ValueError(
                f"initial_delay_ms must be > 0, got {self.initial_delay_ms}"
            )
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"initial_delay_ms ({self.initial_delay_ms})"
            )

    def with_max_retries(self, max_retries: int) -> "RetryOptions":
        return replace(self, max_retries=max_retries)


DEFAULT_RETRY_OPTIONS = RetryOptions()


def _error_category(error: BaseException) -> str:
    return classify(error).category


async def _safe_invoke_hook(
    hook: RetryHook,
    hook_name: str,
    error: BaseException,
    number: int,
    operation_name: str,
) -> None:
    """Call an on_retry/on_exhausted hook, swallowing and logging any errors."""
    try:
        outcome = hook(error, number)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as cb_err:
        logger.warning(
            "Error in %s callback for %s: %s",
            hook_name,
            operation_name,
            str(cb_err)[:100],
            extra={
                "operation": operation_name,
                "callback_error": str(cb_err)[:100],
            },
        )


def _log_retry_failure(
    operation_name: str,
    error: Exception,
    error_category: str,
    attempt: int,
    options: RetryOptions,
    retryable: bool,
) -> None:
    """Log not-retryable or max-retries-exhausted."""
    error_type = type(error).__name__
    if not retryable:
        logger.warning(
            "Non-retryable error for %s, not retrying: %s",
            operation_name,
            str(error)[:200],
            extra={
                "operation": operation_name,
                "attempt": attempt + 1,
                "error_type": error_type,
                "error_category": error_category,
                "status_code": getattr(error, "status_code", None),
                "error_message": str(error)[:200],
            },
        )
        return

    logger.error(
        "Max retries exhausted for %s: %s",
        operation_name,
        str(error)[:200],
        extra={
            "operation": operation_name,
            "attempt": attempt + 1,
            "max_retries": options.max_retries,
            "error_type": error_type,
            "error_category": error_category,
            "status_code": getattr(error, "status_code", None),
            "error_message": str(error)[:200],
        },
    )


def _log_retry_attempt(
    operation_name: str,
    attempt: int,
    options: RetryOptions,
    error_category: str,
    delay_ms: float,
    error: Exception,
) -> None:
    logger.warning(
        "Retryable error for %s, will retry",
        operation_name,
        extra={
            "operation": operation_name,
            "attempt": attempt + 1,
            "max_retries": options.max_retries,
            "error_category": error_category,
            "status_code": getattr(error, "status_code", None),
            "delay_ms": round(delay_ms, 2),
            "error_message": str(error)[:200],
        },
    )


class RetryPolicy:
    """
    Executes an async operation with bounded exponential backoff.

    Args:
        options: Retry configuration (defaults to DEFAULT_RETRY_OPTIONS)
        sink: Observability sink for spans (defaults to the module sink)
        metrics_enabled: Record Prometheus metrics for attempts and delays
        rng: Source of uniform [0, 1) values for jitter
        sleep: Awaitable sleep taking seconds

    Usage:
        policy = RetryPolicy(RetryOptions(max_retries=5))
        account = await policy.execute(lambda: client.get_account(org, ledger, acc))
    """

    def __init__(
        self,
        options: RetryOptions | None = None,
        *,
        sink: ObservabilitySink | None = None,
        metrics_enabled: bool = True,
        rng: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._options = options or DEFAULT_RETRY_OPTIONS
        self._sink = sink
        self._metrics_enabled = metrics_enabled
        self._rng = rng
        self._sleep = sleep

    @property
    def options(self) -> RetryOptions:
        return self._options

    @property
    def sink(self) -> ObservabilitySink:
        return self._sink if self._sink is not None else get_sink()

    def with_options(self, **changes: Any) -> "RetryPolicy":
        """Copy of this policy with some options replaced."""
        return RetryPolicy(
            replace(self._options, **changes),
            sink=self._sink,
            metrics_enabled=self._metrics_enabled,
            rng=self._rng,
            sleep=self._sleep,
        )

    def is_retryable(self, error: BaseException) -> bool:
        """
        Decide whether an error is worth another attempt.

        A custom retry_condition gets the raw error and has the final say;
        if it raises, the error is treated as not retryable.
        """
        condition = self._options.retry_condition
        if condition is not None:
            try:
                return bool(condition(error))
            except Exception as cond_err:
                logger.warning(
                    "Error in retry_condition, treating as not retryable: %s",
                    str(cond_err)[:100],
                    extra={"callback_error": str(cond_err)[:100]},
                )
                return False

        if isinstance(error, MidazError) and error.status_code is not None:
            return error.status_code in self._options.retryable_status_codes
        return False

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay in milliseconds before the retry following ``attempt``.

        min(initial * 2^attempt, max), plus uniform additive jitter of up
        to 100% of that capped value.
        """
        initial = self._options.initial_delay_ms
        maximum = self._options.max_delay_ms
        # initial * 2**attempt >= maximum from here on; the power itself can overflow a float
        if attempt >= math.ceil(math.log2(maximum / initial)):
            capped = maximum
        else:
            capped = min(initial * (2**attempt), maximum)
        return capped + self._rng() * capped

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails permanently, or runs out
        of retries.

        Raises:
            The last exception raised by ``operation``, unchanged
        """
        name = operation_name or getattr(operation, "__name__", "operation")
        with traced_span(
            self.sink,
            "retry_policy.execute",
            {"retry.operation": name, "retry.max_retries": self._options.max_retries},
        ) as span:
            return await self._run(operation, name, span)

    async def _run(
        self, operation: Callable[[], Awaitable[T]], name: str, span: Span
    ) -> T:
        options = self._options
        attempt = 0

        while True:
            span.set_attribute("retry.attempts", attempt + 1)
            try:
                result = await operation()
            except Exception as e:
                retryable = self.is_retryable(e)
                error_category = _error_category(e)

                if not retryable or attempt >= options.max_retries:
                    _log_retry_failure(
                        name, e, error_category, attempt, options, retryable
                    )
                    if retryable and options.on_exhausted is not None:
                        await _safe_invoke_hook(
                            options.on_exhausted, "on_exhausted", e, attempt + 1, name
                        )
                    self._record_attempt(
                        name, "exhausted" if retryable else "not_retryable"
                    )
                    span.set_attribute("retry.error_category", error_category)
                    raise

                delay_ms = self.calculate_delay(attempt)
                _log_retry_attempt(name, attempt, options, error_category, delay_ms, e)
                self._record_attempt(name, "retry")
                if self._metrics_enabled:
                    metrics.record_retry_delay(name, delay_ms / 1000)
                if options.on_retry is not None:
                    await _safe_invoke_hook(
                        options.on_retry, "on_retry", e, attempt + 1, name
                    )

                await self._sleep(delay_ms / 1000)
                attempt += 1
                continue

            if attempt > 0:
                logger.info(
                    "Retry succeeded for %s after %d attempts",
                    name,
                    attempt + 1,
                    extra={
                        "operation": name,
                        "attempt": attempt + 1,
                        "max_retries": options.max_retries,
                    },
                )
            self._record_attempt(name, "success")
            return result

    def _record_attempt(self, name: str, outcome: str) -> None:
        if self._metrics_enabled:
            metrics.record_retry_attempt(name, outcome)


def with_retry(
    policy: RetryPolicy | None = None,
    options: RetryOptions | None = None,
):
    """
    Decorator for retrying async functions.

    Args:
        policy: Policy to run under (takes precedence over options)
        options: Options for a policy built per decorated function

    Usage:
        @with_retry(options=RetryOptions(max_retries=5))
        async def fetch_balance(balance_id):
            ...
    """
    active = policy or RetryPolicy(options)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await active.execute(
                lambda: func(*args, **kwargs), operation_name=func.__name__
            )

        return wrapper

    return decorator


__all__ = [
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "DEFAULT_RETRY_OPTIONS",
    "RetryHook",
    "RetryOptions",
    "RetryPolicy",
    "parse_status_codes",
    "with_retry",
]
