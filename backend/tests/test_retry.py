"""
Tests for the retry executor
"""
import asyncio

import pytest

from arcana.core.errors import StageOutputError, StageTimeoutError
from arcana.core.retry import RetryPolicy, execute_with_retry


class Flaky:
    """Fails a fixed number of times before succeeding"""

    def __init__(self, failures: int, error: Exception = None):
        self.failures = failures
        self.error = error or StageOutputError("analysis", "bad output")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def test_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)
    with pytest.raises(ValueError):
        RetryPolicy(timeout=0)


def test_linear_backoff():
    policy = RetryPolicy(max_attempts=4, base_delay=1.5)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.5, 3.0, 4.5]


@pytest.mark.asyncio
async def test_succeeds_after_failures(fake_sleep, sleeps):
    op = Flaky(failures=2)
    result = await execute_with_retry(op, RetryPolicy(3, 1.0), label="test", sleep=fake_sleep)

    assert result == "ok"
    assert op.calls == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_raises_last_error_after_max_attempts(fake_sleep, sleeps):
    op = Flaky(failures=10)
    with pytest.raises(StageOutputError):
        await execute_with_retry(op, RetryPolicy(3, 1.0), label="test", sleep=fake_sleep)

    assert op.calls == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps(fake_sleep, sleeps):
    op = Flaky(failures=1)
    with pytest.raises(StageOutputError):
        await execute_with_retry(op, RetryPolicy(1, 1.0), sleep=fake_sleep)
    assert op.calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_errors_outside_retry_on_propagate_immediately(fake_sleep, sleeps):
    op = Flaky(failures=5, error=KeyError("boom"))
    with pytest.raises(KeyError):
        await execute_with_retry(
            op, RetryPolicy(3, 1.0), sleep=fake_sleep, retry_on=(StageOutputError,)
        )
    assert op.calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_timeout_per_attempt(fake_sleep):
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await asyncio.sleep(1)

    with pytest.raises(StageTimeoutError) as exc_info:
        await execute_with_retry(
            slow, RetryPolicy(2, 0.0, timeout=0.01), label="stage:analysis", sleep=fake_sleep
        )
    assert calls == 2
    assert exc_info.value.stage == "stage:analysis"
