"""Per-player, per-category rate limiting.

This module wires the rate limiting adapter to the three operation
categories of the structure API.

Rate limiting strategy:
- Minimum interval between accepted operations, per (steam id, category).
- Each category has its own interval (POST_STRUCTURE_RATE_LIMIT,
  GET_STRUCTURE_RATE_LIMIT, POST_LIKE_RATE_LIMIT).
- Rejections never mutate state; the caller gets a retry-after hint.
"""

from __future__ import annotations

import logging
from enum import Enum

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.core.config import StoreSettings
from app.core.errors import RateLimitedError

logger = logging.getLogger(__name__)


class RateCategory(str, Enum):
    SUBMIT = "submit"
    FETCH = "fetch"
    LIKE = "like"


def intervals_from_settings(store_settings: StoreSettings) -> dict[RateCategory, float]:
    """Map each category to its configured minimum interval in seconds."""

    return {
        RateCategory.SUBMIT: store_settings.post_structure_rate_limit,
        RateCategory.FETCH: store_settings.get_structure_rate_limit,
        RateCategory.LIKE: store_settings.post_like_rate_limit,
    }


class CategoryRateLimiter:
    """Gate operations by (identity, category) using a shared limiter backend.

    Attributes:
        intervals: Minimum interval per category, fixed for the process lifetime.
    """

    def __init__(self, limiter: AbstractRateLimiter, intervals: dict[RateCategory, float]) -> None:
        missing = set(RateCategory) - set(intervals)
        if missing:
            raise ValueError(f"missing intervals for categories: {sorted(c.value for c in missing)}")
        self._limiter = limiter
        self.intervals = dict(intervals)

    def allow(self, identity: int, category: RateCategory, now: float) -> bool:
        """Return whether the attempt is accepted, recording it if so."""

        return self._limiter.allow((identity, category), self.intervals[category], now).allowed

    def check(self, identity: int, category: RateCategory, now: float) -> None:
        """Accept the attempt or raise.

        Raises:
            RateLimitedError: When the category interval has not elapsed yet.
        """

        result = self._limiter.allow((identity, category), self.intervals[category], now)
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={"steam_id": identity, "category": category.value},
            )
            return

        retry_after = round(result.retry_after_seconds or 0.0, 3)
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "steam_id": identity,
                "category": category.value,
                "interval_s": result.interval_seconds,
                "retry_after_s": retry_after,
            },
        )
        raise RateLimitedError(category=category.value, retry_after=retry_after)

    def prune(self, now: float) -> int:
        """Drop records older than the longest configured interval."""

        return self._limiter.prune(now, max(self.intervals.values()))
