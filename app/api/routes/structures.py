from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.adapters.storage.base import STORAGE_INT_MAX, STORAGE_INT_MIN
from app.core.auth import session_ticket
from app.core.errors import InvalidInputError
from app.schemas.structure import (
    LikeRequest,
    LikeResponse,
    StructureCreate,
    StructureResponse,
    UserStatsResponse,
)
from app.services.request_pipeline import RequestPipeline

router = APIRouter(tags=["Structures"])

# Bound on the exclude_prefabs filter; longer lists are refused, not truncated
MAX_EXCLUDED_PREFABS = 200


def get_pipeline(request: Request) -> RequestPipeline:
    """Return the pipeline built by the app factory for this app instance."""
    return request.app.state.pipeline


def parse_prefab_list(raw: Optional[str]) -> frozenset[str]:
    """Split a comma-separated prefab list, dropping blanks.

    Raises:
        InvalidInputError: If more than MAX_EXCLUDED_PREFABS distinct names are given.

    Examples:
        >>> sorted(parse_prefab_list("rope, piton,,"))
        ['piton', 'rope']
    """
    if not raw:
        return frozenset()
    names = [name.strip() for name in raw.split(",") if name.strip()]
    excluded = frozenset(names)
    if len(excluded) > MAX_EXCLUDED_PREFABS:
        raise InvalidInputError(
            "Too many prefabs to exclude",
            details={
                "field": "exclude_prefabs",
                "max_value": MAX_EXCLUDED_PREFABS,
                "actual_value": len(excluded),
            },
        )
    return excluded


@router.post("/structures", response_model=StructureResponse)
async def submit_structure(
    body: StructureCreate,
    ticket: Annotated[bytes, Depends(session_ticket)],
    pipeline: Annotated[RequestPipeline, Depends(get_pipeline)],
) -> StructureResponse:
    """Store a structure for the calling player.

    When the player's bucket for this scene is full, their oldest structure
    in that scene is evicted in the same step.
    """
    structure = await pipeline.submit_structure(ticket, body.to_draft())
    return StructureResponse.from_structure(structure)


@router.get("/structures", response_model=List[StructureResponse])
async def get_random_structures(
    ticket: Annotated[bytes, Depends(session_ticket)],
    pipeline: Annotated[RequestPipeline, Depends(get_pipeline)],
    scene: str = Query(..., description="Scene to sample from."),
    limit: Optional[int] = Query(None, description="Maximum structures to return (clamped)."),
    map_id: Optional[int] = Query(
        None,
        ge=STORAGE_INT_MIN,
        le=STORAGE_INT_MAX,
        description="Only structures from this map.",
    ),
    exclude_prefabs: Optional[str] = Query(
        None,
        description="Comma-separated prefab names to leave out.",
    ),
) -> List[StructureResponse]:
    """Return a random selection of structures placed in ``scene``."""
    structures = await pipeline.fetch_random(
        ticket,
        scene,
        limit,
        map_id=map_id,
        exclude_prefabs=parse_prefab_list(exclude_prefabs),
    )
    return [StructureResponse.from_structure(s) for s in structures]


@router.post("/structures/{structure_id}/like", response_model=LikeResponse)
async def like_structure(
    structure_id: int,
    ticket: Annotated[bytes, Depends(session_ticket)],
    pipeline: Annotated[RequestPipeline, Depends(get_pipeline)],
    body: Optional[LikeRequest] = None,
) -> LikeResponse:
    """Add likes to another player's structure."""
    count = body.count if body is not None else 1
    likes = await pipeline.like_structure(ticket, structure_id, count)
    return LikeResponse(id=structure_id, likes=likes)


@router.get("/users/me/stats", response_model=UserStatsResponse)
async def get_my_stats(
    ticket: Annotated[bytes, Depends(session_ticket)],
    pipeline: Annotated[RequestPipeline, Depends(get_pipeline)],
) -> UserStatsResponse:
    """Return the calling player's like tallies."""
    stats = await pipeline.player_stats(ticket)
    return UserStatsResponse.from_stats(stats)
