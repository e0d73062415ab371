"""In-memory minimum-interval rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: the check and the update run under one lock, so two
  simultaneous attempts at the boundary cannot both be accepted.
"""

from __future__ import annotations

import threading
from typing import Hashable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class InMemoryIntervalRateLimiter(AbstractRateLimiter):
    """Rate limiter remembering the last accepted attempt per key.

    An attempt is accepted when no record exists for the key or when at
    least ``interval_seconds`` elapsed since the last accepted attempt.

    Important:
        This limiter is per-process only. If the API runs with multiple
        workers, each worker enforces its own independent limits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_accepted: dict[Hashable, float] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_accepted)

    def allow(self, key: Hashable, interval_seconds: float, now: float) -> RateLimitResult:
        """Check-and-record an attempt for ``key``.

        Raises:
            ValueError: If interval_seconds is negative.
        """
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

        with self._lock:
            last = self._last_accepted.get(key)
            if last is None or now - last >= interval_seconds:
                self._last_accepted[key] = now
                return RateLimitResult(allowed=True, interval_seconds=interval_seconds)

        return RateLimitResult(
            allowed=False,
            interval_seconds=interval_seconds,
            retry_after_seconds=max(0.0, interval_seconds - (now - last)),
        )

    def prune(self, now: float, max_interval_seconds: float) -> int:
        with self._lock:
            stale = [k for k, last in self._last_accepted.items() if now - last >= max_interval_seconds]
            for key in stale:
                del self._last_accepted[key]
        return len(stale)

