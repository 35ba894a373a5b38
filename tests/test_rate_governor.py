"""
Tests for the Rate Governor.

Validates:
- Proactive waiting when the budget is nearly spent
- 429 absorption with Retry-After / fallback waits
- Bounded retries
- Budget bookkeeping from rate headers
- Overlapping calls sharing one governor
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from onboarding_sync.integrations.rate_governor import (
    GovernorState,
    RateGovernor,
    RateLimitExhaustedError,
)

from conftest import BASE_URL, FakeClock

PREFIX = "X-PCO-API-Request-Rate"


class ScriptedTransport:
    """Replays a list of responses and records the clock time of each send."""

    def __init__(self, clock: FakeClock, responses: list[httpx.Response]) -> None:
        self.clock = clock
        self.responses = list(responses)
        self.sent_at: list[float] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.sent_at.append(self.clock.now)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(
            template.status_code, headers=template.headers, content=template.content
        )


def make_governor(clock: FakeClock, **kwargs) -> RateGovernor:
    options = dict(
        limit=100,
        window_seconds=20.0,
        low_water_mark=10,
        buffer_seconds=0.1,
        fallback_wait_seconds=20.0,
        max_retries=5,
        header_prefix=PREFIX,
    )
    options.update(kwargs)
    options.setdefault("sleep", clock.sleep)
    return RateGovernor(clock=clock, **options)


async def send(governor: RateGovernor, transport: ScriptedTransport) -> httpx.Response:
    async with httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(transport)
    ) as client:
        return await governor.execute(client, client.build_request("GET", "/people/v2/me"))


class TestProactiveThrottle:
    @pytest.mark.asyncio
    async def test_exhausted_budget_waits_until_reset(self, clock):
        governor = make_governor(clock)
        governor._budget.remaining = 0
        reset_at = governor.stats().reset_at
        transport = ScriptedTransport(clock, [httpx.Response(200)])

        response = await send(governor, transport)

        assert response.status_code == 200
        assert transport.sent_at[0] >= reset_at
        assert clock.sleeps == [pytest.approx(20.1)]
        assert governor.stats().remaining == 100
        assert governor.state == GovernorState.OPEN

    @pytest.mark.asyncio
    async def test_no_wait_above_low_water_mark(self, clock):
        governor = make_governor(clock)
        governor._budget.remaining = 11
        await send(governor, ScriptedTransport(clock, [httpx.Response(200)]))
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_no_wait_once_window_has_passed(self, clock):
        governor = make_governor(clock)
        governor._budget.remaining = 0
        clock.now += 25
        await send(governor, ScriptedTransport(clock, [httpx.Response(200)]))
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_headers_drive_the_next_wait(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock,
            [
                httpx.Response(200, headers={f"{PREFIX}-Limit": "100", f"{PREFIX}-Count": "95"}),
                httpx.Response(200),
            ],
        )
        await send(governor, transport)
        assert governor.stats().remaining == 5

        clock.now += 2
        await send(governor, transport)
        assert clock.sleeps == [pytest.approx(18.1)]


class TestRateLimitResponses:
    @pytest.mark.asyncio
    async def test_retry_after_is_honoured_and_request_reissued_once(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock,
            [httpx.Response(429, headers={"Retry-After": "5"}), httpx.Response(200, json={})],
        )

        response = await send(governor, transport)

        assert response.status_code == 200
        assert len(transport.sent_at) == 2
        assert transport.sent_at[1] - transport.sent_at[0] >= 5.0
        assert clock.sleeps == [5.0]
        stats = governor.stats()
        assert stats.total_calls == 2
        assert stats.rate_limit_errors == 1

    @pytest.mark.asyncio
    async def test_fallback_wait_without_retry_after(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(clock, [httpx.Response(429), httpx.Response(200)])
        await send(governor, transport)
        assert clock.sleeps == [20.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("retry_after", ["soon", "inf", "nan"])
    async def test_unusable_retry_after_uses_fallback(self, clock, retry_after):
        governor = make_governor(clock, fallback_wait_seconds=7.0)
        transport = ScriptedTransport(
            clock, [httpx.Response(429, headers={"Retry-After": retry_after}), httpx.Response(200)]
        )
        await send(governor, transport)
        assert clock.sleeps == [7.0]

    @pytest.mark.asyncio
    async def test_retries_are_capped(self, clock):
        governor = make_governor(clock, max_retries=2)
        transport = ScriptedTransport(clock, [httpx.Response(429, headers={"Retry-After": "1"})])

        with pytest.raises(RateLimitExhaustedError) as exc_info:
            await send(governor, transport)

        assert exc_info.value.retries == 2
        assert exc_info.value.response.status_code == 429
        assert len(transport.sent_at) == 3
        assert governor.stats().rate_limit_errors == 3

    @pytest.mark.asyncio
    async def test_budget_is_full_after_429_wait(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock,
            [
                httpx.Response(
                    429,
                    headers={"Retry-After": "1", f"{PREFIX}-Limit": "100", f"{PREFIX}-Count": "100"},
                ),
                httpx.Response(200),
            ],
        )
        await send(governor, transport)
        # Only the Retry-After wait; the reset budget doesn't trigger a proactive wait
        assert clock.sleeps == [1.0]


class TestPassThrough:
    @pytest.mark.asyncio
    async def test_server_error_is_returned_unchanged(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(clock, [httpx.Response(500, text="boom")])
        response = await send(governor, transport)
        assert response.status_code == 500
        assert len(transport.sent_at) == 1
        assert governor.stats().total_calls == 1

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, clock):
        governor = make_governor(clock)

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(httpx.ConnectError):
                await governor.execute(client, client.build_request("GET", "/people/v2/me"))


class TestBudgetBookkeeping:
    @pytest.mark.asyncio
    async def test_remaining_never_exceeds_limit(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock,
            [httpx.Response(200, headers={f"{PREFIX}-Limit": "50", f"{PREFIX}-Count": "-3"})],
        )
        await send(governor, transport)
        stats = governor.stats()
        assert stats.limit == 50
        assert stats.remaining == 50

    @pytest.mark.asyncio
    async def test_expired_window_is_reopened_after_a_call(self, clock):
        governor = make_governor(clock)
        clock.now += 45
        await send(
            governor,
            ScriptedTransport(clock, [httpx.Response(200, headers={f"{PREFIX}-Period": "30"})]),
        )
        assert governor.stats().reset_at == pytest.approx(clock.now + 30)

    @pytest.mark.asyncio
    async def test_new_window_refills_budget_without_count_header(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock,
            [
                httpx.Response(200, headers={f"{PREFIX}-Limit": "100", f"{PREFIX}-Count": "95"}),
                httpx.Response(200),
            ],
        )
        await send(governor, transport)
        assert governor.stats().remaining == 5

        clock.now += 30
        await send(governor, transport)
        assert governor.stats().remaining == 100

        clock.now += 1
        await send(governor, transport)
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_reset_stats(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock, [httpx.Response(429, headers={"Retry-After": "0"}), httpx.Response(200)]
        )
        await send(governor, transport)
        governor._budget.remaining = 3

        governor.reset_stats()

        stats = governor.stats()
        assert stats.total_calls == 0
        assert stats.rate_limit_errors == 0
        assert stats.remaining == stats.limit
        assert stats.reset_at == pytest.approx(clock.now + 20)

    def test_stats_is_a_copy(self, clock):
        governor = make_governor(clock)
        governor.stats().remaining = 0
        assert governor.stats().remaining == 100


class TestConcurrentCalls:
    @pytest.mark.asyncio
    async def test_counters_are_exact_under_gather(self, clock):
        governor = make_governor(clock)
        transport = ScriptedTransport(
            clock,
            [
                httpx.Response(429, headers={"Retry-After": "1"}),
                httpx.Response(429, headers={"Retry-After": "1"}),
                httpx.Response(200),
            ],
        )

        async with httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(transport)
        ) as client:
            responses = await asyncio.gather(
                *(
                    governor.execute(client, client.build_request("GET", f"/people/v2/people/{i}"))
                    for i in range(8)
                )
            )

        assert [r.status_code for r in responses] == [200] * 8
        stats = governor.stats()
        assert stats.total_calls == 10
        assert stats.rate_limit_errors == 2
        assert len(transport.sent_at) == 10

    @pytest.mark.asyncio
    async def test_rate_limit_wait_does_not_block_other_calls(self, clock):
        waiting = asyncio.Event()
        release = asyncio.Event()

        async def held_sleep(seconds: float) -> None:
            waiting.set()
            await release.wait()
            await clock.sleep(seconds)

        governor = make_governor(clock, sleep=held_sleep)
        sent: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request.url.path)
            if request.url.path == "/slow" and sent.count("/slow") == 1:
                return httpx.Response(429, headers={"Retry-After": "5"})
            return httpx.Response(200)

        async with httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(handler)
        ) as client:
            slow = asyncio.create_task(
                governor.execute(client, client.build_request("GET", "/slow"))
            )
            await waiting.wait()
            assert governor.state == GovernorState.THROTTLED

            fast = await governor.execute(client, client.build_request("GET", "/fast"))
            assert fast.status_code == 200
            assert not slow.done()

            release.set()
            slow_response = await slow

        assert slow_response.status_code == 200
        assert sent == ["/slow", "/fast", "/slow"]
        assert clock.sleeps == [5.0]
        assert governor.state == GovernorState.OPEN
        stats = governor.stats()
        assert stats.total_calls == 3
        assert stats.rate_limit_errors == 1

    @pytest.mark.asyncio
    async def test_state_stays_throttled_until_last_waiter_finishes(self, clock):
        gates = [asyncio.Event(), asyncio.Event()]
        entered: list[float] = []

        async def gated_sleep(seconds: float) -> None:
            gate = gates[len(entered)]
            entered.append(seconds)
            await gate.wait()

        governor = make_governor(clock, sleep=gated_sleep)
        first = asyncio.create_task(governor._throttle(1.0))
        second = asyncio.create_task(governor._throttle(2.0))
        while len(entered) < 2:
            await asyncio.sleep(0)

        gates[0].set()
        await first
        assert governor.state == GovernorState.THROTTLED

        gates[1].set()
        await second
        assert governor.state == GovernorState.OPEN
