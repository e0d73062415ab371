"""Application factory for the FastAPI app.

Centralizes app construction (services, middleware, handlers, routers) so
tests can build isolated instances with their own settings, authority and
repository. Shared state lives on ``app.state``; nothing is module-global.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.rate_limit.in_memory import InMemoryIntervalRateLimiter
from app.adapters.steam.base import AbstractTicketAuthority
from app.adapters.steam.factory import create_ticket_authority
from app.adapters.storage.base import AbstractStructureRepository
from app.adapters.storage.factory import create_structure_repository
from app.api.routes import structures_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import CategoryRateLimiter, intervals_from_settings
from app.services.identity_service import IdentityVerifier
from app.services.request_pipeline import RequestPipeline
from app.services.structure_service import StructureStore
from app.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)


def build_pipeline(
    settings: Settings,
    *,
    authority: AbstractTicketAuthority,
    repository: AbstractStructureRepository,
    clock: Callable[[], float] = time.time,
) -> RequestPipeline:
    """Wire verifier, limiter and store into a request pipeline."""
    cache: SimpleTTLCache[int] = SimpleTTLCache(
        ttl_seconds=settings.steam.ticket_cache_ttl_seconds,
        max_entries=settings.steam.ticket_cache_max_entries,
        clock=clock,
    )
    verifier = IdentityVerifier(
        authority,
        cache,
        app_id=settings.steam.appid,
        max_ticket_bytes=settings.steam.max_ticket_bytes,
    )
    limiter = CategoryRateLimiter(
        InMemoryIntervalRateLimiter(),
        intervals_from_settings(settings.store),
    )
    store = StructureStore(repository, settings.store)
    return RequestPipeline(verifier, limiter, store, clock=clock)


def create_app(
    settings: Settings | None = None,
    *,
    authority: AbstractTicketAuthority | None = None,
    repository: AbstractStructureRepository | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the process settings.
        authority: Ticket authority override; built from settings when omitted.
        repository: Structure repository override; built from settings when omitted.
        clock: Time source shared by the cache, limiter and store.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = settings or default_settings
    ticket_authority = authority or create_ticket_authority(cfg.steam)
    structure_repository = repository or create_structure_repository(cfg.database)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "app.started",
            extra={"app_env": cfg.app_env, "storage_backend": cfg.database.backend},
        )
        yield
        await ticket_authority.aclose()
        structure_repository.close()
        logger.info("app.stopped")

    app = FastAPI(
        title="Structure Exchange API",
        description=(
            "Backend for sharing player-built structures between game sessions. "
            "Players submit structures per scene, fetch a random selection placed "
            "by others and like the ones that helped them. Requests are "
            "authenticated with a Steam session ticket and rate limited per player."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.pipeline = build_pipeline(
        cfg,
        authority=ticket_authority,
        repository=structure_repository,
        clock=clock,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(structures_router, prefix="/api/v1")

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
