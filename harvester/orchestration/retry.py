"""
Harvester - Retry Executor

Runs a fallible scraper call with bounded exponential backoff. Only failures
the classifier marks recoverable are retried; auth failures and security
challenges propagate on the first attempt.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from harvester.orchestration.error_classifier import ErrorClassifier, error_classifier
from harvester.shared.constants import RETRY_BACKOFF_FACTOR, RETRY_JITTER_RANGE
from harvester.shared.logging import LoggerMixin

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class BackoffWait:
    """base_delay * 1.5^(attempt-1), scaled by a 0.9-1.1 jitter."""

    def __init__(self, base_delay: float, factor: float = RETRY_BACKOFF_FACTOR) -> None:
        self.base_delay = base_delay
        self.factor = factor

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number)

    def delay_for(self, attempt: int) -> float:
        low, high = RETRY_JITTER_RANGE
        return self.base_delay * self.factor ** max(attempt - 1, 0) * random.uniform(low, high)


class RetryExecutor(LoggerMixin):
    """
    Wraps an async operation with classification-aware retries.

    Usage:
        executor = RetryExecutor(max_retries=3, base_delay=5.0)
        record = await executor.run(lambda: scraper.fetch_detail(item))
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 5.0,
        *,
        timeout: float | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self.classifier = classifier or error_classifier
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        base_delay: float | None = None,
        *,
        timeout: float | None = None,
        context: str = "",
    ) -> T:
        """
        Invoke operation, retrying recoverable failures.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            max_retries: Retries after the first attempt (default: executor's)
            base_delay: Backoff base in seconds (default: executor's)
            timeout: Per-attempt timeout in seconds (default: executor's)
            context: Description used in log lines

        Returns:
            The operation's result

        Raises:
            The last error once retries are exhausted, or the first
            non-recoverable error.
        """
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.base_delay if base_delay is None else base_delay
        per_call = self.timeout if timeout is None else timeout

        async def attempt() -> T:
            if per_call is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=per_call)

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            self.logger.warning(
                "Operation failed, retrying",
                context=context,
                attempt=retry_state.attempt_number,
                max_attempts=retries + 1,
                error=str(exc),
                category=str(self.classifier.categorize(exc)),
                sleep_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else 0,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=BackoffWait(delay),
            retry=retry_if_exception(self.classifier.is_recoverable),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(attempt)
