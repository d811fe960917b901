from __future__ import annotations

from collections import deque
import math
from threading import Lock
import time
from typing import Callable, Deque

from fastapi import Request

from app.core.exceptions import RateLimitedError


class SlidingWindowLimiter:
    """Per-key sliding window kept as a queue of expiry timestamps.

    Keys whose every hit has expired are dropped on the next sweep, so the key
    map only holds identities seen within their window.
    """

    def __init__(self, sweep_interval_seconds: float = 60.0, clock: Callable[[], float] = time.time) -> None:
        self._expiries: dict[str, Deque[float]] = {}
        self._lock = Lock()
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._next_sweep = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiries)

    def _sweep(self, now: float) -> None:
        stale = [key for key, expiries in self._expiries.items() if not expiries or expiries[-1] <= now]
        for key in stale:
            del self._expiries[key]
        self._next_sweep = now + self._sweep_interval

    def check(self, *, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for ``key`` unless it is over ``limit``; returns (allowed, retry_after)."""
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            expiries = self._expiries.get(key)
            if expiries is not None:
                while expiries and expiries[0] <= now:
                    expiries.popleft()
                if len(expiries) >= limit:
                    return False, max(1, math.ceil(expiries[0] - now))
            else:
                expiries = self._expiries[key] = deque()
            expiries.append(now + window_seconds)
        return True, 0

    def clear(self) -> None:
        with self._lock:
            self._expiries.clear()
            self._next_sweep = 0.0


_limiter = SlidingWindowLimiter()


def _request_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_key(request: Request, scope: str, identity: str | None = None) -> str:
    return f"{scope}|{_request_ip(request)}|{(identity or '').strip().lower()}"


def enforce_rate_limit(
    *,
    request: Request,
    scope: str,
    limit: int,
    window_seconds: int,
    identity: str | None = None,
) -> None:
    allowed, retry_after = _limiter.check(
        key=rate_limit_key(request, scope, identity),
        limit=limit,
        window_seconds=window_seconds,
    )
    if not allowed:
        raise RateLimitedError(
            f"Too many requests for {scope}. Try again in {retry_after} second(s).",
            retry_after=retry_after,
        )


def clear_rate_limiter() -> None:
    _limiter.clear()
