"""Fixed-window rate limiting per endpoint and client."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from flapi.catalog.definitions import EndpointDefinition


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter(Protocol):
    """Account requests against an endpoint's rate-limit policy."""

    def check(self, endpoint: EndpointDefinition, client_key: str) -> RateLimitDecision:
        """Record one request and report whether it may proceed."""
        ...


class InMemoryRateLimiter:
    """Process-local fixed-window counters keyed by endpoint and client."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # (endpoint key, client) -> (window start, count, interval seconds)
        self._windows: dict[tuple[str, str], tuple[float, int, int]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, (started, _, interval) in self._windows.items()
            if now - started >= interval
        ]
        for key in expired:
            del self._windows[key]

    def check(self, endpoint: EndpointDefinition, client_key: str) -> RateLimitDecision:
        """
        Count a request and decide whether it is within the window's budget.

        Windows that have already expired are dropped on each call, so idle
        clients do not accumulate counters.

        Returns
        -------
        RateLimitDecision
            Allowed flag, remaining budget and seconds until the window resets.
        """
        policy = endpoint.rate_limit
        if not policy.enabled:
            return RateLimitDecision(allowed=True, remaining=-1)
        key = (endpoint.key, client_key)
        now = self._clock()
        with self._lock:
            self._prune(now)
            started, count, _ = self._windows.get(key, (now, 0, policy.interval_seconds))
            retry_after = max(1, math.ceil(started + policy.interval_seconds - now))
            if count >= policy.max:
                return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)
            count += 1
            self._windows[key] = (started, count, policy.interval_seconds)
        return RateLimitDecision(allowed=True, remaining=policy.max - count)

    def reset(self) -> None:
        """Drop all counters."""
        with self._lock:
            self._windows.clear()


__all__ = ["InMemoryRateLimiter", "RateLimitDecision", "RateLimiter"]
