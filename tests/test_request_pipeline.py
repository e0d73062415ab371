"""Tests for verify -> rate limit -> store ordering and the full flow."""

import random

import pytest

from app.adapters.rate_limit.in_memory import InMemoryIntervalRateLimiter
from app.adapters.steam.base import AbstractTicketAuthority, TicketCheckResult
from app.adapters.storage.base import StructureDraft
from app.adapters.storage.in_memory import InMemoryStructureRepository
from app.core.config import StoreSettings
from app.core.errors import (
    AuthRejectedError,
    AuthUnavailableError,
    InvalidCredentialError,
    NotFoundError,
    RateLimitedError,
)
from app.core.rate_limit import CategoryRateLimiter, RateCategory, intervals_from_settings
from app.services import request_pipeline as pipeline_module
from app.services.identity_service import IdentityVerifier
from app.services.request_pipeline import RequestPipeline
from app.services.structure_service import StructureStore
from app.utils.simple_cache import SimpleTTLCache

ALICE = b"a1a1"
BOB = b"b0b0"
IDENTITIES = {ALICE: 1001, BOB: 2002}


class MapAuthority(AbstractTicketAuthority):
    """Accepts the tickets it knows; can be switched to unavailable."""

    def __init__(self) -> None:
        self.calls = 0
        self.down = False

    async def check_ticket(self, ticket: bytes, app_id: int) -> TicketCheckResult:
        self.calls += 1
        if self.down:
            raise AuthUnavailableError()
        identity = IDENTITIES.get(ticket)
        if identity is None:
            return TicketCheckResult(valid=False, reason="unknown ticket")
        return TicketCheckResult(valid=True, identity=identity)


class SpyRepository(InMemoryStructureRepository):
    def __init__(self) -> None:
        super().__init__()
        self.inserts = 0
        self.samples = 0

    def insert_and_prune(self, owner, draft, *, created_at, max_per_bucket):
        self.inserts += 1
        return super().insert_and_prune(
            owner, draft, created_at=created_at, max_per_bucket=max_per_bucket
        )

    def sample(self, query, rng):
        self.samples += 1
        return super().sample(query, rng)


def _pipeline(clock, limits: StoreSettings, authority=None, repository=None):
    authority = authority or MapAuthority()
    repository = repository or SpyRepository()
    verifier = IdentityVerifier(
        authority, SimpleTTLCache(ttl_seconds=30, clock=clock), app_id=480
    )
    limiter = CategoryRateLimiter(InMemoryIntervalRateLimiter(), intervals_from_settings(limits))
    store = StructureStore(repository, limits, rng=random.Random(7))
    return RequestPipeline(verifier, limiter, store, clock=clock), authority, repository


def _draft(scene: str = "forest", prefab: str = "rope") -> StructureDraft:
    return StructureDraft(scene=scene, prefab=prefab, payload=b'{"x":1}')


@pytest.mark.asyncio
async def test_failed_verification_does_not_consume_rate_limit(clock, store_settings) -> None:
    pipeline, _, repository = _pipeline(clock, store_settings)

    with pytest.raises(AuthRejectedError):
        await pipeline.submit_structure(b"dead", _draft())
    with pytest.raises(InvalidCredentialError):
        await pipeline.submit_structure(b"", _draft())

    assert repository.inserts == 0
    assert pipeline.limiter.allow(1001, RateCategory.SUBMIT, clock()) is True


@pytest.mark.asyncio
async def test_unavailable_authority_does_not_consume_rate_limit(clock, store_settings) -> None:
    pipeline, authority, _ = _pipeline(clock, store_settings)
    authority.down = True

    with pytest.raises(AuthUnavailableError):
        await pipeline.submit_structure(ALICE, _draft())

    authority.down = False
    stored = await pipeline.submit_structure(ALICE, _draft())
    assert stored.owner == 1001


@pytest.mark.asyncio
async def test_rate_limited_request_never_reaches_store(clock, store_settings) -> None:
    pipeline, _, repository = _pipeline(clock, store_settings)

    await pipeline.submit_structure(ALICE, _draft())
    clock.advance(0.4)
    with pytest.raises(RateLimitedError) as exc_info:
        await pipeline.submit_structure(ALICE, _draft())

    assert repository.inserts == 1
    assert exc_info.value.category == "submit"
    assert exc_info.value.retry_after == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_categories_and_players_are_limited_independently(clock, store_settings) -> None:
    pipeline, _, _ = _pipeline(clock, store_settings)

    stored = await pipeline.submit_structure(ALICE, _draft())
    await pipeline.fetch_random(ALICE, "forest")
    await pipeline.like_structure(BOB, stored.id)
    await pipeline.submit_structure(BOB, _draft())

    with pytest.raises(RateLimitedError):
        await pipeline.fetch_random(ALICE, "forest")


@pytest.mark.asyncio
async def test_rate_limit_is_consumed_even_when_store_fails(clock, store_settings) -> None:
    pipeline, _, _ = _pipeline(clock, store_settings)

    with pytest.raises(NotFoundError):
        await pipeline.like_structure(BOB, 12345)
    with pytest.raises(RateLimitedError):
        await pipeline.like_structure(BOB, 12345)


@pytest.mark.asyncio
async def test_end_to_end_submit_fetch_like_with_eviction(clock) -> None:
    limits = StoreSettings(
        max_user_structs_saved_per_scene=1,
        max_requested_structs=10,
        default_random_limit=10,
        post_structure_rate_limit=1.0,
        get_structure_rate_limit=1.0,
        post_like_rate_limit=1.0,
    )
    pipeline, _, _ = _pipeline(clock, limits)

    first = await pipeline.submit_structure(ALICE, _draft(prefab="rope"))
    clock.advance(1)
    second = await pipeline.submit_structure(ALICE, _draft(prefab="piton"))

    seen = await pipeline.fetch_random(BOB, "forest", 10)
    assert [s.id for s in seen] == [second.id]

    with pytest.raises(NotFoundError):
        await pipeline.like_structure(BOB, first.id)
    clock.advance(1)
    assert await pipeline.like_structure(BOB, second.id) == 1

    stats = await pipeline.player_stats(ALICE)
    assert stats.likes_received == 1


@pytest.mark.asyncio
async def test_cached_identity_skips_authority(clock, store_settings) -> None:
    pipeline, authority, _ = _pipeline(clock, store_settings)

    await pipeline.submit_structure(ALICE, _draft())
    clock.advance(1)
    await pipeline.fetch_random(ALICE, "forest")

    assert authority.calls == 1


@pytest.mark.asyncio
async def test_limiter_is_pruned_periodically(clock, store_settings, monkeypatch) -> None:
    monkeypatch.setattr(pipeline_module, "PRUNE_EVERY", 2)
    pipeline, _, _ = _pipeline(clock, store_settings)
    backend = pipeline.limiter._limiter

    await pipeline.fetch_random(ALICE, "forest")
    clock.advance(5)
    await pipeline.fetch_random(BOB, "forest")

    # Alice's record is older than every interval and was dropped.
    assert len(backend) == 1
