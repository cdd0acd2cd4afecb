"""Per-client rate limiting using sliding window counters.

Each scope (auth, upload, general) has its own request budget and window.
Counters use time.monotonic() and are evicted LRU-first so memory stays
bounded no matter how many clients show up.

Example:
    limiter = RateLimiter(rules={"auth": RateLimitRule(max_requests=5, window_seconds=900)})

    result = await limiter.allow("203.0.113.7", scope="auth")
    if not result.allowed:
        return 429  # Too Many Requests
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from time import monotonic


@dataclass(frozen=True)
class RateLimitRule:
    """Request budget for one scope."""

    max_requests: int
    window_seconds: float
    message: str = "Too many requests, please try again later."


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    reset_after: float
    limit: int
    message: str = ""

    def headers(self) -> dict[str, str]:
        """Standard RateLimit-* response headers."""
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(max(0, self.remaining)),
            "RateLimit-Reset": str(max(0, round(self.reset_after))),
        }
        if not self.allowed:
            headers["Retry-After"] = headers["RateLimit-Reset"]
        return headers


class SlidingWindowCounter:
    """Sliding window counter with O(1) operations.

    Keeps the current and previous window counts and weights the previous
    one by how much of it still overlaps the sliding window.
    """

    __slots__ = (
        "_current_count",
        "_previous_count",
        "_window_start",
        "_window_seconds",
        "_limit",
    )

    def __init__(self, limit: int, window_seconds: float, now: float | None = None) -> None:
        self._limit = limit
        self._window_seconds = window_seconds
        self._current_count = 0
        self._previous_count = 0
        self._window_start = monotonic() if now is None else now

    def _maybe_rotate(self, now: float) -> None:
        """Rotate windows if needed."""
        elapsed = now - self._window_start
        if elapsed >= self._window_seconds:
            windows_passed = int(elapsed / self._window_seconds)
            if windows_passed >= 2:
                self._previous_count = 0
            else:
                self._previous_count = self._current_count
            self._current_count = 0
            self._window_start = now - (elapsed % self._window_seconds)

    def _weighted(self, now: float) -> tuple[float, float]:
        elapsed = now - self._window_start
        weight = elapsed / self._window_seconds
        weighted = self._previous_count * (1 - weight) + self._current_count
        return weighted, self._window_seconds - elapsed

    def allow(self, now: float | None = None) -> tuple[bool, int, float]:
        """Check if a request is allowed and count it.

        Returns:
            Tuple of (allowed, remaining, reset_after_seconds)
        """
        if now is None:
            now = monotonic()

        self._maybe_rotate(now)
        weighted, reset_after = self._weighted(now)

        if weighted >= self._limit:
            return False, 0, reset_after

        self._current_count += 1
        remaining = max(0, int(self._limit - weighted - 1))
        return True, remaining, reset_after

    def peek(self, now: float | None = None) -> tuple[int, float]:
        """Remaining budget without counting a request."""
        if now is None:
            now = monotonic()

        self._maybe_rotate(now)
        weighted, reset_after = self._weighted(now)
        return max(0, int(self._limit - weighted)), reset_after


def default_rules() -> dict[str, RateLimitRule]:
    return {
        "auth": RateLimitRule(
            max_requests=5,
            window_seconds=900,
            message="Too many authentication attempts, please try again later.",
        ),
        "upload": RateLimitRule(
            max_requests=10,
            window_seconds=60,
            message="Too many uploads, please try again later.",
        ),
        "general": RateLimitRule(max_requests=100, window_seconds=900),
    }


@dataclass
class RateLimiter:
    """Rate limiter keyed by client and scope.

    Safe for concurrent use from one event loop.
    """

    rules: dict[str, RateLimitRule] = field(default_factory=default_rules)
    max_entries: int = 10000
    _counters: OrderedDict[str, SlidingWindowCounter] = field(
        default_factory=OrderedDict, init=False
    )
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def _rule(self, scope: str) -> RateLimitRule:
        try:
            return self.rules[scope]
        except KeyError:
            raise ValueError(f"Unknown rate limit scope: {scope}") from None

    def _get_counter(self, key: str, rule: RateLimitRule, now: float) -> SlidingWindowCounter:
        """Get or create the counter for a scoped key."""
        if key in self._counters:
            self._counters.move_to_end(key)
            return self._counters[key]

        counter = SlidingWindowCounter(rule.max_requests, rule.window_seconds, now=now)
        self._counters[key] = counter

        while len(self._counters) > self.max_entries:
            self._counters.popitem(last=False)

        return counter

    async def allow(self, key: str, scope: str = "general", now: float | None = None) -> RateLimitResult:
        """Count a request for ``key`` in ``scope``.

        Args:
            key: Client identifier, usually the remote address.
            scope: Name of the rule to apply.
            now: Monotonic timestamp override.

        Returns:
            RateLimitResult with allowed status and header values.
        """
        rule = self._rule(scope)
        async with self._lock:
            if now is None:
                now = monotonic()
            counter = self._get_counter(f"{scope}:{key}", rule, now)
            allowed, remaining, reset_after = counter.allow(now)

        return RateLimitResult(
            allowed=allowed,
            remaining=remaining,
            reset_after=reset_after,
            limit=rule.max_requests,
            message="" if allowed else rule.message,
        )

    async def check(self, key: str, scope: str = "general", now: float | None = None) -> RateLimitResult:
        """Check the rate limit without counting a request."""
        rule = self._rule(scope)
        async with self._lock:
            if now is None:
                now = monotonic()
            counter = self._counters.get(f"{scope}:{key}")
            if counter is None:
                return RateLimitResult(
                    allowed=True,
                    remaining=rule.max_requests,
                    reset_after=rule.window_seconds,
                    limit=rule.max_requests,
                )
            remaining, reset_after = counter.peek(now)

        return RateLimitResult(
            allowed=remaining > 0,
            remaining=remaining,
            reset_after=reset_after,
            limit=rule.max_requests,
        )

    async def reset(self, key: str | None = None, scope: str = "general") -> None:
        """Reset one counter, or all of them."""
        async with self._lock:
            if key is None:
                self._counters.clear()
            else:
                self._counters.pop(f"{scope}:{key}", None)

    @property
    def entry_count(self) -> int:
        """Number of tracked entries."""
        return len(self._counters)


def create_rate_limiter(settings) -> RateLimiter:
    """Build a limiter from ServerSettings."""
    return RateLimiter(
        rules={
            "auth": RateLimitRule(
                max_requests=settings.auth_rate_limit,
                window_seconds=settings.auth_rate_window,
                message="Too many authentication attempts, please try again later.",
            ),
            "upload": RateLimitRule(
                max_requests=settings.upload_rate_limit,
                window_seconds=settings.upload_rate_window,
                message="Too many uploads, please try again later.",
            ),
            "general": RateLimitRule(
                max_requests=settings.general_rate_limit,
                window_seconds=settings.general_rate_window,
            ),
        }
    )
