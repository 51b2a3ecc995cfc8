"""
Unit tests for the retry executor.
"""

import asyncio

import pytest

from conftest import FakeClock
from harvester.orchestration import BackoffWait, RetryExecutor
from harvester.shared.exceptions import (
    AuthenticationError,
    NavigationError,
    SecurityCheckError,
)


class FlakyOperation:
    """Fails a fixed number of times, then returns "ok"."""

    def __init__(self, failures: int, error=lambda: NavigationError("Page load failed")) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error()
        return "ok"


@pytest.fixture
def executor(clock):
    return RetryExecutor(max_retries=3, base_delay=5.0, sleep=clock.sleep)


class TestRetryBudget:
    """Tests for attempt counting."""

    @pytest.mark.parametrize("failures", [0, 1, 2, 3])
    def test_succeeds_after_r_failures_with_r_plus_one_calls(self, executor, failures):
        operation = FlakyOperation(failures)

        assert asyncio.run(executor.run(operation)) == "ok"
        assert operation.calls == failures + 1

    def test_exhausted_retries_raise_last_error(self, executor):
        operation = FlakyOperation(10)

        with pytest.raises(NavigationError):
            asyncio.run(executor.run(operation))
        assert operation.calls == 4

    def test_max_retries_override(self, executor):
        operation = FlakyOperation(10)

        with pytest.raises(NavigationError):
            asyncio.run(executor.run(operation, max_retries=1))
        assert operation.calls == 2

    def test_zero_retries_attempts_once(self, executor):
        operation = FlakyOperation(10)

        with pytest.raises(NavigationError):
            asyncio.run(executor.run(operation, max_retries=0))
        assert operation.calls == 1


class TestNonRecoverable:
    """Auth failures and security challenges are never retried."""

    def test_security_check_attempted_once(self, executor, clock):
        operation = FlakyOperation(10, error=lambda: SecurityCheckError("captcha"))

        with pytest.raises(SecurityCheckError):
            asyncio.run(executor.run(operation, max_retries=5))
        assert operation.calls == 1
        assert clock.sleeps == []

    def test_auth_error_attempted_once(self, executor):
        operation = FlakyOperation(10, error=lambda: AuthenticationError("Access denied"))

        with pytest.raises(AuthenticationError):
            asyncio.run(executor.run(operation))
        assert operation.calls == 1

    def test_untyped_message_classified(self, executor):
        operation = FlakyOperation(10, error=lambda: RuntimeError("Please solve this captcha"))

        with pytest.raises(RuntimeError):
            asyncio.run(executor.run(operation))
        assert operation.calls == 1

    def test_author_message_is_retried(self, executor):
        operation = FlakyOperation(10, error=lambda: ValueError("Could not read author list"))

        with pytest.raises(ValueError):
            asyncio.run(executor.run(operation))
        assert operation.calls == 4


class TestBackoff:
    """Tests for wait times between attempts."""

    def test_delays_grow_by_factor(self, executor, clock):
        operation = FlakyOperation(3)
        asyncio.run(executor.run(operation))

        assert len(clock.sleeps) == 3
        for attempt, slept in enumerate(clock.sleeps, start=1):
            nominal = 5.0 * 1.5 ** (attempt - 1)
            assert nominal * 0.9 <= slept <= nominal * 1.1

    def test_delay_for(self):
        wait = BackoffWait(base_delay=2.0)
        assert 1.8 <= wait.delay_for(1) <= 2.2
        assert 2.7 <= wait.delay_for(2) <= 3.3

    def test_timeout_is_recoverable(self):
        clock = FakeClock()
        calls = 0

        async def hangs_once():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "done"

        executor = RetryExecutor(max_retries=1, base_delay=0, timeout=0.01, sleep=clock.sleep)
        assert asyncio.run(executor.run(hangs_once)) == "done"
        assert calls == 2
