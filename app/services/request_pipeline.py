"""Request-level composition: verify identity, rate-limit, then hit the store.

The ordering is a contract:
- rate-limit state is never consumed for requests that fail verification
- the store is never touched for rate-limited requests
Any failure short-circuits the remaining steps. Storage work runs in the
thread pool so SQLite I/O never blocks the event loop.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi.concurrency import run_in_threadpool

from app.adapters.storage.base import Structure, StructureDraft, UserStats
from app.core.rate_limit import CategoryRateLimiter, RateCategory
from app.services.identity_service import IdentityVerifier
from app.services.structure_service import StructureStore

logger = logging.getLogger(__name__)

# Accepted operations between two opportunistic rate-limit table prunes
PRUNE_EVERY = 1024


class RequestPipeline:
    """Orchestrates the three public structure operations.

    Attributes:
        verifier: Ticket -> Steam id resolver.
        limiter: Per (identity, category) throttle.
        store: Structure store.
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(
        self,
        verifier: IdentityVerifier,
        limiter: CategoryRateLimiter,
        store: StructureStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.verifier = verifier
        self.limiter = limiter
        self.store = store
        self.clock = clock
        self._accepted = 0

    async def authorize(self, ticket: bytes, category: RateCategory) -> tuple[int, float]:
        """Verify the caller and consume one rate-limit slot.

        Returns:
            Tuple of (steam_id, now) where ``now`` is the accepted timestamp.

        Raises:
            InvalidCredentialError, AuthRejectedError, AuthUnavailableError:
                From identity verification (limiter untouched).
            RateLimitedError: When the category interval has not elapsed.
        """
        identity = await self.verifier.verify(ticket)

        now = self.clock()
        self.limiter.check(identity, category, now)

        self._accepted += 1
        if self._accepted % PRUNE_EVERY == 0:
            pruned = self.limiter.prune(now)
            logger.debug("rate_limit.pruned", extra={"removed": pruned})
        return identity, now

    async def submit_structure(self, ticket: bytes, draft: StructureDraft) -> Structure:
        identity, now = await self.authorize(ticket, RateCategory.SUBMIT)
        return await run_in_threadpool(self.store.submit, identity, draft, now)

    async def fetch_random(
        self,
        ticket: bytes,
        scene: str,
        limit: int | None = None,
        *,
        map_id: int | None = None,
        exclude_prefabs: frozenset[str] = frozenset(),
    ) -> list[Structure]:
        _, now = await self.authorize(ticket, RateCategory.FETCH)
        return await run_in_threadpool(
            lambda: self.store.random_sample(
                scene,
                limit,
                now,
                map_id=map_id,
                exclude_prefabs=exclude_prefabs,
            )
        )

    async def like_structure(self, ticket: bytes, structure_id: int, count: int = 1) -> int:
        identity, now = await self.authorize(ticket, RateCategory.LIKE)
        return await run_in_threadpool(
            lambda: self.store.like(structure_id, identity, now, count=count)
        )

    async def player_stats(self, ticket: bytes) -> UserStats:
        identity, _ = await self.authorize(ticket, RateCategory.FETCH)
        return await run_in_threadpool(self.store.user_stats, identity)
