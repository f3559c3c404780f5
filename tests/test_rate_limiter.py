"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

import asyncio

import pytest

from kestrel.services.rate_limit import RateLimitDecision, RateLimiter, format_epoch_ms


class TestRateLimiter:
    """Admission decisions for a single identity."""

    @pytest.mark.asyncio
    async def test_admits_up_to_limit_then_denies(self, clock):
        """Five admissions count down remaining; the sixth is denied."""
        limiter = RateLimiter(limit=5, window_ms=60_000, clock=clock)
        window_start = clock.now

        decisions = [await limiter.check_limit("u1") for _ in range(5)]
        assert [d.allowed for d in decisions] == [True] * 5
        assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

        denied = await limiter.check_limit("u1")
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.limit == 5
        assert denied.reset_time == window_start + 60_000

    @pytest.mark.asyncio
    async def test_denials_do_not_mutate_window(self, clock):
        """Repeated denials keep remaining at zero and the same reset time."""
        limiter = RateLimiter(limit=2, window_ms=1_000, clock=clock)
        await limiter.check_limit("u1")
        await limiter.check_limit("u1")

        first = await limiter.check_limit("u1")
        clock.advance(10)
        second = await limiter.check_limit("u1")

        assert first == second
        assert limiter.snapshot("u1").count == 2

    @pytest.mark.asyncio
    async def test_window_resets_after_duration(self, clock):
        """The first request after the window elapses is admitted."""
        limiter = RateLimiter(limit=1, window_ms=60_000, clock=clock)
        assert (await limiter.check_limit("u1")).allowed
        assert not (await limiter.check_limit("u1")).allowed

        clock.advance(60_000)
        decision = await limiter.check_limit("u1")

        assert decision.allowed
        assert decision.remaining == 0
        assert decision.reset_time == clock.now + 60_000

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, clock):
        """Exhausting one identity leaves others untouched."""
        limiter = RateLimiter(limit=1, window_ms=60_000, clock=clock)
        await limiter.check_limit("u1")
        assert not (await limiter.check_limit("u1")).allowed
        assert (await limiter.check_limit("u2")).allowed

    @pytest.mark.asyncio
    async def test_concurrent_requests_never_exceed_limit(self, clock):
        """Concurrent checks for one identity admit exactly ``limit`` requests."""
        limiter = RateLimiter(limit=10, window_ms=60_000, clock=clock)

        decisions = await asyncio.gather(*(limiter.check_limit("u1") for _ in range(50)))

        assert sum(1 for d in decisions if d.allowed) == 10
        assert sorted(d.remaining for d in decisions if d.allowed) == list(range(10))

    def test_rejects_invalid_configuration(self):
        """Limit and window must be positive."""
        with pytest.raises(ValueError):
            RateLimiter(limit=0)
        with pytest.raises(ValueError):
            RateLimiter(limit=1, window_ms=0)


class TestWindowBounds:
    """Eviction and sweeping keep the window map bounded."""

    @pytest.mark.asyncio
    async def test_least_recently_used_identity_is_evicted(self, clock):
        limiter = RateLimiter(limit=1, window_ms=60_000, max_identities=2, clock=clock)
        await limiter.check_limit("a")
        await limiter.check_limit("b")
        await limiter.check_limit("a")
        await limiter.check_limit("c")

        assert len(limiter) == 2
        assert "b" not in limiter
        assert "a" in limiter and "c" in limiter

    @pytest.mark.asyncio
    async def test_eviction_only_makes_admission_more_permissive(self, clock):
        limiter = RateLimiter(limit=1, window_ms=60_000, max_identities=1, clock=clock)
        await limiter.check_limit("a")
        await limiter.check_limit("b")

        assert (await limiter.check_limit("a")).allowed

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_windows(self, clock):
        limiter = RateLimiter(limit=3, window_ms=1_000, clock=clock)
        await limiter.check_limit("a")
        await limiter.check_limit("b")
        clock.advance(500)
        await limiter.check_limit("c")
        clock.advance(600)

        removed = await limiter.sweep()

        assert removed == 2
        assert len(limiter) == 1 and "c" in limiter

    @pytest.mark.asyncio
    async def test_periodic_sweep_runs_on_check(self, clock):
        limiter = RateLimiter(limit=3, window_ms=1_000, sweep_interval_ms=1_000, clock=clock)
        await limiter.check_limit("a")
        clock.advance(1_000)

        await limiter.check_limit("b")

        assert "a" not in limiter


class TestRateLimitDecision:
    """Derived values used in HTTP responses."""

    def test_retry_after_rounds_up_and_never_negative(self):
        decision = RateLimitDecision(allowed=False, limit=5, remaining=0, reset_time=10_500)
        assert decision.retry_after(now=9_000) == 2
        assert decision.retry_after(now=10_500) == 0
        assert decision.retry_after(now=20_000) == 0

    def test_headers_and_iso_reset(self):
        decision = RateLimitDecision(allowed=True, limit=5, remaining=3, reset_time=0)
        assert decision.reset_time_iso == "1970-01-01T00:00:00.000Z"
        assert decision.headers() == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "3",
            "X-RateLimit-Reset": "1970-01-01T00:00:00.000Z",
        }

    def test_format_epoch_ms_keeps_milliseconds(self):
        assert format_epoch_ms(1_234) == "1970-01-01T00:00:01.234Z"
