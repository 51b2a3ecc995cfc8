"""
Harvester - Rate Limiter

Enforces the hourly request budget and the minimum spacing between calls to
the external source. Every network attempt (retries included) goes through
acquire() exactly once.
"""

import asyncio
import random
import time
from typing import Awaitable, Callable

from harvester.orchestration.models import RateLimitState
from harvester.shared.constants import RATE_WINDOW_SECONDS
from harvester.shared.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """
    Hourly budget plus cooldown spacing.

    - If request_count has reached requests_per_hour inside the current
      window, acquire() waits for the window to roll over.
    - Otherwise, if the previous call was less than cooldown_period ago, it
      waits out the remainder plus a random jitter so calls are not
      perfectly periodic.

    Usage:
        limiter = RateLimiter(requests_per_hour=30, cooldown_period_ms=10_000)
        await limiter.acquire()  # Waits if over budget or inside cooldown
    """

    def __init__(
        self,
        requests_per_hour: int,
        cooldown_period_ms: int = 0,
        cooldown_jitter_ms: int = 0,
        *,
        window_seconds: float = RATE_WINDOW_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if requests_per_hour <= 0:
            raise ValueError("requests_per_hour must be positive")
        self.requests_per_hour = requests_per_hour
        self.cooldown_period = cooldown_period_ms / 1000
        self.cooldown_jitter = cooldown_jitter_ms / 1000
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

        self._request_count = 0
        self._window_started_at = clock()
        self._last_request_at: float | None = None

    @property
    def state(self) -> RateLimitState:
        return RateLimitState(
            request_count=self._request_count,
            window_started_at=self._window_started_at,
            last_request_at=self._last_request_at,
        )

    def reconfigure(
        self,
        requests_per_hour: int,
        cooldown_period_ms: int,
        cooldown_jitter_ms: int = 0,
    ) -> None:
        """Change the limits; the budget already spent in this window is kept."""
        if requests_per_hour <= 0:
            raise ValueError("requests_per_hour must be positive")
        self.requests_per_hour = requests_per_hour
        self.cooldown_period = cooldown_period_ms / 1000
        self.cooldown_jitter = cooldown_jitter_ms / 1000

    async def acquire(self) -> float:
        """
        Wait until the next call is allowed and account for it.

        Returns:
            Time waited in seconds
        """
        async with self._lock:
            waited = 0.0
            now = self._clock()

            if now - self._window_started_at >= self.window_seconds:
                self._roll_window(now)

            if self._request_count >= self.requests_per_hour:
                wait_time = self._window_started_at + self.window_seconds - now
                logger.info(
                    "Hourly request budget exhausted, waiting for window reset",
                    requests=self._request_count,
                    wait_seconds=round(wait_time, 1),
                )
                if wait_time > 0:
                    await self._sleep(wait_time)
                    waited += wait_time
                now = self._clock()
                self._roll_window(now)

            if self._last_request_at is not None and self.cooldown_period > 0:
                since_last = now - self._last_request_at
                if since_last < self.cooldown_period:
                    jitter = random.uniform(0, self.cooldown_jitter) if self.cooldown_jitter else 0.0
                    wait_time = self.cooldown_period - since_last + jitter
                    await self._sleep(wait_time)
                    waited += wait_time
                    now = self._clock()

            self._request_count += 1
            self._last_request_at = now

            if waited > 0:
                logger.debug(
                    "Rate limited",
                    waited_seconds=round(waited, 3),
                    request_count=self._request_count,
                )
            return waited

    def _roll_window(self, now: float) -> None:
        self._window_started_at = now
        self._request_count = 0
