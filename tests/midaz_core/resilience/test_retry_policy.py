"""
Tests for RetryPolicy backoff, retry decisions and span handling.

Sleeps are replaced with AsyncMock and jitter with a fixed rng so the
tests never wait.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from midaz_core.errors import InternalError, MidazError, NetworkError, ValidationError
from midaz_core.resilience import (
    DEFAULT_RETRYABLE_STATUS_CODES,
    RetryOptions,
    RetryPolicy,
    with_retry,
)


def make_policy(sink=None, **option_values):
    return RetryPolicy(
        RetryOptions(**option_values),
        sink=sink,
        metrics_enabled=False,
        rng=lambda: 0.0,
        sleep=AsyncMock(),
    )


def unavailable():
    return InternalError("service unavailable", status_code=503)


class TestRetryOptions:
    def test_default_values(self):
        options = RetryOptions()
        assert options.max_retries == 3
        assert options.initial_delay_ms == 100
        assert options.max_delay_ms == 1000
        assert options.retryable_status_codes == frozenset({408, 429, 500, 502, 503, 504})
        assert options.retry_condition is None

    def test_type_conversion_from_strings(self):
        """Values from YAML or env vars arrive as strings."""
        options = RetryOptions(
            max_retries="5",
            initial_delay_ms="50",
            max_delay_ms="2000",
            retryable_status_codes="503, 504",
        )
        assert options.max_retries == 5
        assert options.initial_delay_ms == 50.0
        assert options.max_delay_ms == 2000.0
        assert options.retryable_status_codes == frozenset({503, 504})

    @pytest.mark.parametrize(
        "values",
        [
            {"max_retries": -1},
            {"initial_delay_ms": 0},
            {"initial_delay_ms": 500, "max_delay_ms": 100},
        ],
    )
    def test_invalid_values_rejected(self, values):
        with pytest.raises(ValueError):
            RetryOptions(**values)

    def test_with_max_retries(self):
        options = RetryOptions(max_retries=3).with_max_retries(0)
        assert options.max_retries == 0
        assert options.initial_delay_ms == 100


class TestCalculateDelay:
    def test_without_jitter(self):
        policy = RetryPolicy(RetryOptions(initial_delay_ms=100, max_delay_ms=1000), rng=lambda: 0.0)
        assert [policy.calculate_delay(a) for a in range(6)] == [100, 200, 400, 800, 1000, 1000]

    def test_with_fixed_jitter_fraction(self):
        policy = RetryPolicy(RetryOptions(initial_delay_ms=100, max_delay_ms=1000), rng=lambda: 0.25)
        assert policy.calculate_delay(0) == pytest.approx(125)
        assert policy.calculate_delay(2) == pytest.approx(500)
        assert policy.calculate_delay(10) == pytest.approx(1250)

    def test_jitter_bounded_by_double_the_cap(self):
        policy = RetryPolicy(RetryOptions(initial_delay_ms=100, max_delay_ms=1000))
        for attempt in range(10):
            base = min(100 * 2**attempt, 1000)
            assert base <= policy.calculate_delay(attempt) < 2 * base

    def test_large_attempt_returns_cap(self):
        policy = RetryPolicy(RetryOptions(initial_delay_ms=1, max_delay_ms=5), rng=lambda: 0.0)
        assert policy.calculate_delay(1024) == 5
        assert policy.calculate_delay(100_000) == 5

    def test_tiny_initial_delay_still_reaches_cap(self):
        policy = RetryPolicy(
            RetryOptions(initial_delay_ms=0.001, max_delay_ms=1_000_000), rng=lambda: 0.0
        )
        assert policy.calculate_delay(29) < 1_000_000
        assert policy.calculate_delay(30) == 1_000_000


class TestIsRetryable:
    @pytest.mark.parametrize("status", sorted(DEFAULT_RETRYABLE_STATUS_CODES))
    def test_retryable_statuses(self, status):
        assert RetryPolicy().is_retryable(MidazError("x", status_code=status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
    def test_client_errors_not_retryable(self, status):
        assert not RetryPolicy().is_retryable(MidazError("x", status_code=status))

    def test_generic_errors_not_retryable(self):
        assert not RetryPolicy().is_retryable(ConnectionError("reset"))

    def test_domain_error_without_status_not_retryable(self):
        assert not RetryPolicy().is_retryable(NetworkError("reset"))

    def test_custom_status_codes(self):
        policy = RetryPolicy(RetryOptions(retryable_status_codes={409}))
        assert policy.is_retryable(MidazError("x", status_code=409))
        assert not policy.is_retryable(MidazError("x", status_code=503))

    def test_custom_condition_receives_raw_error(self):
        condition = Mock(return_value=True)
        policy = RetryPolicy(RetryOptions(retry_condition=condition))
        error = ConnectionError("reset")
        assert policy.is_retryable(error)
        condition.assert_called_once_with(error)

    def test_failing_condition_means_not_retryable(self):
        def condition(error):
            raise RuntimeError("broken predicate")

        policy = RetryPolicy(RetryOptions(retry_condition=condition))
        assert not policy.is_retryable(unavailable())


class TestExecute:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 5])
    async def test_success_called_once(self, max_retries):
        operation = AsyncMock(return_value="ok")
        policy = make_policy(max_retries=max_retries)

        assert await policy.execute(operation) == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    async def test_retryable_failure_called_n_plus_one_times(self, max_retries):
        errors = [unavailable() for _ in range(max_retries + 1)]
        operation = AsyncMock(side_effect=errors)
        policy = make_policy(max_retries=max_retries)

        with pytest.raises(InternalError) as exc_info:
            await policy.execute(operation)

        assert operation.await_count == max_retries + 1
        assert exc_info.value is errors[-1]

    @pytest.mark.asyncio
    async def test_long_retry_run_keeps_original_error(self):
        error = unavailable()
        operation = AsyncMock(side_effect=error)
        policy = make_policy(max_retries=1100, initial_delay_ms=1, max_delay_ms=5)

        with pytest.raises(InternalError) as exc_info:
            await policy.execute(operation)

        assert operation.await_count == 1101
        assert exc_info.value is error
        assert policy._sleep.await_args.args[0] == pytest.approx(0.005)

    @pytest.mark.asyncio
    async def test_non_retryable_status_called_once(self):
        error = ValidationError("bad amount")
        operation = AsyncMock(side_effect=error)
        policy = make_policy()

        with pytest.raises(ValidationError) as exc_info:
            await policy.execute(operation)

        assert operation.await_count == 1
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_generic_error_called_once(self):
        operation = AsyncMock(side_effect=RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            await make_policy().execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        operation = AsyncMock(side_effect=[unavailable(), unavailable(), "done"])
        policy = make_policy(max_retries=3)

        assert await policy.execute(operation) == "done"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_sleeps_backoff_in_seconds(self):
        sleep = AsyncMock()
        policy = RetryPolicy(
            RetryOptions(max_retries=3, initial_delay_ms=100, max_delay_ms=1000),
            metrics_enabled=False,
            rng=lambda: 0.0,
            sleep=sleep,
        )
        operation = AsyncMock(side_effect=[unavailable()] * 4)

        with pytest.raises(InternalError):
            await policy.execute(operation)

        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2, 0.4]

    @pytest.mark.asyncio
    async def test_custom_condition_allows_generic_retry(self):
        operation = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])
        policy = make_policy(retry_condition=lambda e: isinstance(e, ConnectionError))

        assert await policy.execute(operation) == "ok"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_shared_policy_keeps_attempts_per_call(self):
        policy = make_policy(max_retries=2)
        first = AsyncMock(side_effect=[unavailable(), "a"])
        second = AsyncMock(side_effect=[unavailable(), unavailable(), "b"])

        results = await asyncio.gather(policy.execute(first), policy.execute(second))

        assert results == ["a", "b"]
        assert first.await_count == 2
        assert second.await_count == 3

    @pytest.mark.asyncio
    async def test_with_options_returns_new_policy(self):
        policy = make_policy(max_retries=3)
        single = policy.with_options(max_retries=0)
        operation = AsyncMock(side_effect=unavailable())

        with pytest.raises(InternalError):
            await single.execute(operation)

        assert operation.await_count == 1
        assert policy.options.max_retries == 3


class TestRetryHooks:
    @pytest.mark.asyncio
    async def test_on_retry_called_before_each_sleep(self):
        calls = []
        errors = [unavailable(), unavailable()]
        operation = AsyncMock(side_effect=[*errors, "ok"])
        policy = make_policy(on_retry=lambda error, number: calls.append((error, number)))

        assert await policy.execute(operation) == "ok"
        assert calls == [(errors[0], 1), (errors[1], 2)]

    @pytest.mark.asyncio
    async def test_async_on_exhausted_gets_attempt_count(self):
        on_exhausted = AsyncMock()
        error = unavailable()
        policy = make_policy(max_retries=2, on_exhausted=on_exhausted)

        with pytest.raises(InternalError):
            await policy.execute(AsyncMock(side_effect=error))

        on_exhausted.assert_awaited_once_with(error, 3)

    @pytest.mark.asyncio
    async def test_on_exhausted_skipped_for_non_retryable(self):
        on_exhausted = Mock()
        policy = make_policy(on_exhausted=on_exhausted)

        with pytest.raises(ValidationError):
            await policy.execute(AsyncMock(side_effect=ValidationError("bad")))

        on_exhausted.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_hooks_do_not_replace_error(self, caplog):
        error = unavailable()
        operation = AsyncMock(side_effect=error)
        policy = make_policy(
            max_retries=1,
            on_retry=Mock(side_effect=RuntimeError("hook broke")),
            on_exhausted=Mock(side_effect=RuntimeError("hook broke")),
        )

        with pytest.raises(InternalError) as exc_info:
            await policy.execute(operation, operation_name="getBalance")

        assert exc_info.value is error
        assert operation.await_count == 2
        hook_errors = [r for r in caplog.records if getattr(r, "callback_error", None)]
        assert len(hook_errors) == 2

    def test_hooks_do_not_affect_option_equality(self):
        assert RetryOptions(on_retry=print) == RetryOptions()


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_error_not_retried(self, recording_sink):
        operation = AsyncMock(side_effect=asyncio.CancelledError())
        policy = make_policy(sink=recording_sink, max_retries=5)

        with pytest.raises(asyncio.CancelledError):
            await policy.execute(operation)

        assert operation.await_count == 1
        span = recording_sink.spans[0]
        assert span.end_count == 1
        assert span.status == "error"

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self, recording_sink):
        policy = RetryPolicy(
            RetryOptions(max_retries=5, initial_delay_ms=10_000, max_delay_ms=10_000),
            sink=recording_sink,
            metrics_enabled=False,
        )
        operation = AsyncMock(side_effect=unavailable())

        task = asyncio.create_task(policy.execute(operation))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert operation.await_count == 1
        assert recording_sink.spans[0].end_count == 1


class TestSpans:
    @pytest.mark.asyncio
    async def test_success_span(self, recording_sink):
        policy = make_policy(sink=recording_sink, max_retries=2)
        await policy.execute(AsyncMock(return_value=1), operation_name="getAccount")

        (span,) = recording_sink.named("retry_policy.execute")
        assert span.attributes["retry.operation"] == "getAccount"
        assert span.attributes["retry.max_retries"] == 2
        assert span.attributes["retry.attempts"] == 1
        assert span.status == "ok"
        assert span.end_count == 1

    @pytest.mark.asyncio
    async def test_failure_span(self, recording_sink):
        policy = make_policy(sink=recording_sink, max_retries=1)
        with pytest.raises(InternalError):
            await policy.execute(AsyncMock(side_effect=unavailable()))

        (span,) = recording_sink.spans
        assert span.attributes["retry.attempts"] == 2
        assert span.attributes["retry.error_category"] == "internal"
        assert span.status == "error"
        assert len(span.exceptions) == 1
        assert span.end_count == 1


class TestWithRetryDecorator:
    @pytest.mark.asyncio
    async def test_decorated_function_retried(self):
        calls = []
        policy = make_policy(max_retries=2)

        @with_retry(policy)
        async def fetch_balance(balance_id):
            calls.append(balance_id)
            if len(calls) < 2:
                raise unavailable()
            return {"id": balance_id}

        assert await fetch_balance("b1") == {"id": "b1"}
        assert calls == ["b1", "b1"]
        assert fetch_balance.__name__ == "fetch_balance"
