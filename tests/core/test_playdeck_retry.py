"""Tests for the bounded retry policy."""

import pytest

from playdeck.core.retry import RetryContext, RetryPolicy


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.delay == 1.0

    def test_should_retry_counts_total_attempts(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1) is True
        assert policy.should_retry(2) is True
        assert policy.should_retry(3) is False

    def test_should_retry_filters_error_types(self):
        policy = RetryPolicy(retry_on=(KeyError,))
        assert policy.should_retry(1, KeyError()) is True
        assert policy.should_retry(1, ValueError()) is False

    def test_fixed_delay(self):
        policy = RetryPolicy(delay=0.25)
        assert policy.next_delay(1) == policy.next_delay(5) == 0.25

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"delay": -1}])
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestRetryContext:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, recorded_sleep):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise KeyError("not yet")
            return "ok"

        retried = []
        ctx = RetryContext(
            RetryPolicy(max_attempts=3, delay=0.5),
            on_retry=lambda attempt, error, delay: retried.append((attempt, delay)),
            sleep=recorded_sleep,
        )

        assert await ctx.run_async(flaky) == "ok"
        assert ctx.attempts == 3
        assert recorded_sleep.delays == [0.5, 0.5]
        assert retried == [(1, 0.5), (2, 0.5)]
        assert len(ctx.errors) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, recorded_sleep):
        async def always_fails():
            raise KeyError("never")

        ctx = RetryContext(RetryPolicy(max_attempts=3, delay=1.0), sleep=recorded_sleep)
        with pytest.raises(KeyError):
            await ctx.run_async(always_fails)
        assert ctx.attempts == 3
        assert recorded_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_raises_immediately(self, recorded_sleep):
        async def fails():
            raise ValueError("bad")

        ctx = RetryContext(RetryPolicy(retry_on=(KeyError,)), sleep=recorded_sleep)
        with pytest.raises(ValueError):
            await ctx.run_async(fails)
        assert ctx.attempts == 1
        assert recorded_sleep.delays == []

    @pytest.mark.asyncio
    async def test_passes_arguments(self, recorded_sleep):
        async def add(a, b=0):
            return a + b

        assert await RetryContext(RetryPolicy(), sleep=recorded_sleep).run_async(add, 1, b=2) == 3
