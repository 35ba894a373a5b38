"""
Rate Governor — adaptive request budget for the Planning Center API.

Planning Center allows a fixed number of requests per rolling window
(100 per 20 seconds at the time of writing) and reports the budget on every
response via X-PCO-API-Request-Rate-* headers. The governor:

- pauses proactively when the remaining budget drops to the low-water mark
  and the window has not yet reset
- absorbs 429 responses by waiting (Retry-After, or a fallback) and
  re-issuing the same request
- keeps call / 429 counters for sync reporting

A single governor instance is owned by the API client. Budget updates are
serialized with an asyncio.Lock; waits happen outside the lock and only
suspend the calling coroutine.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

import httpx

from onboarding_sync.config import settings

logger = logging.getLogger(__name__)


class GovernorState(str, enum.Enum):
    OPEN = "open"
    THROTTLED = "throttled"


@dataclass
class RateBudget:
    """Request budget for the current rate-limit window."""

    limit: int
    remaining: int
    reset_at: float  # clock() timestamp at which the window resets
    total_calls: int = 0
    rate_limit_errors: int = 0


class RateLimitExhaustedError(Exception):
    """Raised when a request is still rate limited after the retry cap."""

    def __init__(self, retries: int, response: httpx.Response) -> None:
        self.retries = retries
        self.response = response
        super().__init__(
            f"Still rate limited after {retries} retries: "
            f"{response.request.method} {response.request.url}"
        )


class RateGovernor:
    """
    Shared request-budget tracker for governed calls.

    Usage:
        governor = RateGovernor()
        response = await governor.execute(client, client.build_request("GET", url))

    ``clock`` and ``sleep`` are injectable so tests can drive time explicitly.
    """

    def __init__(
        self,
        limit: int | None = None,
        window_seconds: float | None = None,
        low_water_mark: int | None = None,
        buffer_seconds: float | None = None,
        fallback_wait_seconds: float | None = None,
        max_retries: int | None = None,
        header_prefix: str | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.window_seconds = (
            settings.rate_limit_window_seconds if window_seconds is None else window_seconds
        )
        self.low_water_mark = (
            settings.rate_limit_low_water_mark if low_water_mark is None else low_water_mark
        )
        self.buffer_seconds = (
            settings.rate_limit_buffer_ms / 1000 if buffer_seconds is None else buffer_seconds
        )
        self.fallback_wait_seconds = (
            settings.rate_limit_fallback_wait_seconds
            if fallback_wait_seconds is None
            else fallback_wait_seconds
        )
        self.max_retries = settings.rate_limit_max_retries if max_retries is None else max_retries
        self.header_prefix = header_prefix or settings.rate_limit_header_prefix

        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._waiters = 0

        limit = settings.rate_limit_default if limit is None else limit
        self._budget = RateBudget(
            limit=limit,
            remaining=limit,
            reset_at=self._clock() + self.window_seconds,
        )

    # ── Governed calls ─────────────────────────────────────────

    async def execute(self, client: httpx.AsyncClient, request: httpx.Request) -> httpx.Response:
        """
        Send a request under the rate budget.

        Waits out the window when the budget is nearly spent, and re-issues the
        request once per 429 received, up to ``max_retries`` times. Transport
        errors and non-429 responses are returned or raised unchanged.
        """
        retries = 0
        while True:
            await self._wait_for_budget()

            response = await client.send(request)
            await self._record_response(response)

            if response.status_code != 429:
                return response

            if retries >= self.max_retries:
                logger.error(
                    "Rate limit retries exhausted after %d attempts: %s %s",
                    retries,
                    request.method,
                    request.url,
                )
                raise RateLimitExhaustedError(retries, response)

            wait = self._retry_after(response)
            budget = self._budget
            logger.warning(
                "Rate limited (429), waiting %.2fs (Retry-After: %s). "
                "Calls made: %d, 429 errors: %d",
                wait,
                response.headers.get("Retry-After", "not provided"),
                budget.total_calls,
                budget.rate_limit_errors,
            )
            await response.aclose()
            await self._throttle(wait)
            retries += 1

    # ── Budget bookkeeping ─────────────────────────────────────

    async def _wait_for_budget(self) -> None:
        async with self._lock:
            now = self._clock()
            budget = self._budget
            if budget.remaining > self.low_water_mark or now >= budget.reset_at:
                return
            wait = budget.reset_at - now + self.buffer_seconds
            remaining = budget.remaining

        logger.info(
            "Rate budget low (%d remaining), waiting %.2fs until reset", remaining, wait
        )
        await self._throttle(wait)

    @property
    def state(self) -> GovernorState:
        """THROTTLED while any coroutine is waiting on the budget."""
        return GovernorState.THROTTLED if self._waiters else GovernorState.OPEN

    async def _throttle(self, wait: float) -> None:
        self._waiters += 1
        try:
            await self._sleep(wait)
        finally:
            self._waiters -= 1
        async with self._lock:
            self._open_window()

    def _open_window(self) -> None:
        self._budget.remaining = self._budget.limit
        self._budget.reset_at = self._clock() + self.window_seconds

    async def _record_response(self, response: httpx.Response) -> None:
        async with self._lock:
            budget = self._budget
            budget.total_calls += 1
            if response.status_code == 429:
                budget.rate_limit_errors += 1

            limit = _header_int(response, f"{self.header_prefix}-Limit")
            count = _header_int(response, f"{self.header_prefix}-Count")
            period = _header_int(response, f"{self.header_prefix}-Period")

            if period is not None and period > 0:
                self.window_seconds = float(period)
            if limit is not None and limit > 0:
                budget.limit = limit
            if self._clock() >= budget.reset_at:
                self._open_window()
            if count is not None:
                budget.remaining = budget.limit - count
            budget.remaining = max(0, min(budget.remaining, budget.limit))

    def _retry_after(self, response: httpx.Response) -> float:
        header = response.headers.get("Retry-After")
        if header:
            try:
                seconds = float(header)
            except ValueError:
                seconds = None
            if seconds is not None and math.isfinite(seconds):
                return max(0.0, seconds)
            logger.debug("Unusable Retry-After header: %r", header)
        return self.fallback_wait_seconds

    # ── Stats ──────────────────────────────────────────────────

    def stats(self) -> RateBudget:
        """Return a copy of the current budget and counters."""
        return replace(self._budget)

    def reset_stats(self) -> None:
        """Zero the counters and open a fresh, full window (call at sync start)."""
        self._budget.total_calls = 0
        self._budget.rate_limit_errors = 0
        self._open_window()


def _header_int(response: httpx.Response, name: str) -> int | None:
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.debug("Ignoring non-integer %s header: %r", name, value)
        return None
