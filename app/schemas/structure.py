"""Pydantic schemas for structure requests and responses."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.adapters.storage.base import (
    STORAGE_INT_MAX,
    STORAGE_INT_MIN,
    Structure,
    StructureDraft,
    UserStats,
)
from app.core.errors import InvalidInputError


def encode_payload(payload: Dict[str, Any]) -> bytes:
    """Serialize placement data to compact, key-sorted JSON bytes.

    Raises:
        InvalidInputError: If the payload holds NaN or an infinity, which
            strict JSON cannot represent and would not survive a round trip.
    """
    if not payload:
        return b""
    try:
        text = json.dumps(payload, separators=(",", ":"), sort_keys=True, allow_nan=False)
    except ValueError as exc:
        raise InvalidInputError(
            "Structure payload must not contain NaN or infinite numbers",
            details={"field": "payload"},
        ) from exc
    return text.encode("utf-8")


def decode_payload(raw: bytes) -> Dict[str, Any]:
    if not raw:
        return {}
    return json.loads(raw.decode("utf-8"))


class StructureCreate(BaseModel):
    """Structure submission sent by the game client."""

    scene: str = Field(..., description="Game level the structure was placed in.")
    prefab: str = Field(..., description="Name of the placed object (rope, piton...).")
    map_id: int = Field(
        0,
        ge=STORAGE_INT_MIN,
        le=STORAGE_INT_MAX,
        description="Map/seed the scene was generated from.",
    )
    segment: int = Field(
        0,
        ge=STORAGE_INT_MIN,
        le=STORAGE_INT_MAX,
        description="Level segment the structure sits in.",
    )
    username: Optional[str] = Field(
        default=None,
        description="Display name of the submitting player.",
    )
    payload: Dict[str, Any] = Field(
        ...,
        description=(
            "Placement data (position, rotation, rope anchors...). Stored as-is and "
            "returned unchanged; its format belongs to the game client."
        ),
    )

    def to_draft(self) -> StructureDraft:
        return StructureDraft(
            scene=self.scene,
            prefab=self.prefab,
            payload=encode_payload(self.payload),
            map_id=self.map_id,
            segment=self.segment,
            username=self.username,
        )


class StructureResponse(BaseModel):
    """A stored structure as returned to clients."""

    id: int = Field(..., description="Server-assigned structure id.")
    user_id: int = Field(..., description="Steam id of the owner.")
    username: Optional[str] = None
    scene: str
    prefab: str
    map_id: int
    segment: int
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(..., description="Creation time in epoch milliseconds.")
    likes: int = Field(0, ge=0)

    @classmethod
    def from_structure(cls, structure: Structure) -> "StructureResponse":
        return cls(
            id=structure.id,
            user_id=structure.owner,
            username=structure.username,
            scene=structure.scene,
            prefab=structure.prefab,
            map_id=structure.map_id,
            segment=structure.segment,
            payload=decode_payload(structure.payload),
            created_at=structure.created_at,
            likes=structure.likes,
        )


class LikeRequest(BaseModel):
    """Like submission; ``count`` is clamped server-side."""

    count: int = Field(1, description="Likes to add (clamped to the configured maximum).")


class LikeResponse(BaseModel):
    id: int
    likes: int = Field(..., ge=0, description="Like counter after the increment.")


class UserStatsResponse(BaseModel):
    user_id: int
    likes_sent: int = 0
    likes_received: int = 0

    @classmethod
    def from_stats(cls, stats: UserStats) -> "UserStatsResponse":
        return cls(
            user_id=stats.user_id,
            likes_sent=stats.likes_sent,
            likes_received=stats.likes_received,
        )
