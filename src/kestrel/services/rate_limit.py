"""Per-identity fixed-window admission control.

Every identity owns one :class:`RateLimitWindow`. Admission is decided under a
per-identity :class:`asyncio.Lock`, so concurrent requests from the same caller
serialize their read-increment-write while different callers never contend.
The window map is bounded: least-recently-used windows are evicted past
``max_identities`` and expired windows are swept periodically.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

__all__ = [
    "RateLimitWindow",
    "RateLimitDecision",
    "RateLimiter",
    "epoch_ms",
    "format_epoch_ms",
]

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], int]


def epoch_ms() -> int:
    """Return the current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def format_epoch_ms(value: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC timestamp (``...Z``)."""
    stamp = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class RateLimitWindow:
    """Mutable counter for one identity's current window."""

    limit: int
    window_ms: int
    window_start: int
    count: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def reset_time(self) -> int:
        return self.window_start + self.window_ms

    def expired(self, now: int) -> bool:
        return now >= self.window_start + self.window_ms

    def reset(self, now: int) -> None:
        self.count = 0
        self.window_start = now


@dataclass(slots=True, frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check.

    Attributes:
        allowed: Whether the request was admitted.
        limit: Ceiling for the window.
        remaining: Slots left in the window after this decision.
        reset_time: Epoch milliseconds at which the window ends.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_time: int

    @property
    def reset_time_iso(self) -> str:
        return format_epoch_ms(self.reset_time)

    def retry_after(self, now: int | None = None) -> int:
        """Whole seconds until the window resets (never negative)."""
        current = epoch_ms() if now is None else now
        return max(0, math.ceil((self.reset_time - current) / 1000))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_time_iso,
        }


class RateLimiter:
    """Fixed-window rate limiter keyed by caller identity.

    Example:
        limiter = RateLimiter(limit=5, window_ms=60_000)
        decision = await limiter.check_limit("u1")
        if not decision.allowed:
            ...
    """

    def __init__(
        self,
        limit: int = 10,
        window_ms: int = 60_000,
        *,
        max_identities: int = 10_000,
        sweep_interval_ms: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        """
        Args:
            limit: Requests admitted per identity per window.
            window_ms: Window length in milliseconds.
            max_identities: Upper bound on tracked identities (LRU eviction).
            sweep_interval_ms: How often expired windows are purged;
                defaults to ``window_ms``.
            clock: Callable returning epoch milliseconds.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be at least 1")
        self.limit = int(limit)
        self.window_ms = int(window_ms)
        self.max_identities = max(1, int(max_identities))
        self.sweep_interval_ms = int(sweep_interval_ms or window_ms)
        self._clock: Clock = clock or epoch_ms
        self._windows: OrderedDict[str, RateLimitWindow] = OrderedDict()
        self._map_lock = asyncio.Lock()
        self._last_sweep = self._clock()

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, identity: object) -> bool:
        return identity in self._windows

    async def check_limit(self, identity: str) -> RateLimitDecision:
        """Admit or deny one request for ``identity``."""
        window = await self._window_for(identity)
        async with window.lock:
            now = self._clock()
            if window.expired(now):
                window.reset(now)
            if window.count < window.limit:
                window.count += 1
                return RateLimitDecision(
                    allowed=True,
                    limit=window.limit,
                    remaining=window.limit - window.count,
                    reset_time=window.reset_time,
                )
            LOGGER.info("Rate limit exceeded for identity %s (limit=%s)", identity, window.limit)
            return RateLimitDecision(
                allowed=False,
                limit=window.limit,
                remaining=0,
                reset_time=window.reset_time,
            )

    def snapshot(self, identity: str) -> RateLimitWindow | None:
        """Return the tracked window for ``identity`` without touching it."""
        return self._windows.get(identity)

    def clear(self) -> None:
        self._windows.clear()

    async def sweep(self) -> int:
        """Drop every expired window; returns the number removed."""
        async with self._map_lock:
            return self._sweep_locked(self._clock())

    async def _window_for(self, identity: str) -> RateLimitWindow:
        async with self._map_lock:
            now = self._clock()
            if now - self._last_sweep >= self.sweep_interval_ms:
                self._sweep_locked(now)
            window = self._windows.get(identity)
            if window is None:
                window = RateLimitWindow(limit=self.limit, window_ms=self.window_ms, window_start=now)
                self._windows[identity] = window
                self._evict_locked()
            else:
                self._windows.move_to_end(identity)
            return window

    def _sweep_locked(self, now: int) -> int:
        self._last_sweep = now
        stale = [key for key, window in self._windows.items() if window.expired(now) and not window.lock.locked()]
        for key in stale:
            del self._windows[key]
        if stale:
            LOGGER.debug("Swept %s expired rate-limit window(s)", len(stale))
        return len(stale)

    def _evict_locked(self) -> None:
        while len(self._windows) > self.max_identities:
            identity, _ = self._windows.popitem(last=False)
            LOGGER.debug("Evicted rate-limit window for identity %s", identity)
