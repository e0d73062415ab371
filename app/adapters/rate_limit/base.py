"""Rate limiter interfaces.

The request pipeline depends on this abstraction (not the concrete
implementation) so the storage backend can be swapped later (e.g., Redis)
with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Hashable


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        interval_seconds: Minimum interval configured for this key.
        retry_after_seconds: Time until the next attempt can succeed (None when allowed).
    """

    allowed: bool
    interval_seconds: float
    retry_after_seconds: float | None = None


class AbstractRateLimiter(ABC):
    """Interface for minimum-interval rate limiters."""

    @abstractmethod
    def allow(self, key: Hashable, interval_seconds: float, now: float) -> RateLimitResult:
        """Check-and-record an attempt for ``key`` at time ``now``.

        Accepted attempts overwrite the last-accepted timestamp; rejected
        attempts leave state untouched. The check and the update form a
        single atomic step.

        Args:
            key: Unique identifier (e.g. ``(steam_id, category)``).
            interval_seconds: Minimum spacing between accepted attempts.
            now: Current time in seconds.

        Returns:
            RateLimitResult describing whether the attempt was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def prune(self, now: float, max_interval_seconds: float) -> int:
        """Drop records that can no longer reject anything.

        Returns:
            Number of records removed.
        """
        raise NotImplementedError
