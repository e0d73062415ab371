"""Structure store: bounded per-player buckets, random sampling and likes.

This service holds the rules of the structure collection and delegates the
atomic storage steps to a repository:
- Input validation (scene length, payload size, prefab/username bounds)
- Insert with oldest-first eviction once a (scene, owner) bucket is full
- Uniform random sampling with a clamped, caller-supplied limit
- Like increments with per-player tallies (self-likes refused)
"""

import logging
import random

from app.adapters.storage.base import (
    STORAGE_INT_MAX,
    STORAGE_INT_MIN,
    AbstractStructureRepository,
    SampleQuery,
    Structure,
    StructureDraft,
    UserStats,
)
from app.core.config import StoreSettings
from app.core.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

MAX_PREFAB_LENGTH = 50
MAX_USERNAME_LENGTH = 50


def clamp(value: int, lower: int, upper: int) -> int:
    """Clamp ``value`` into ``[lower, upper]``."""
    return max(lower, min(value, upper))


class StructureStore:
    """Bounded, prunable collection of structures per (scene, owner).

    Attributes:
        repository: Storage adapter honoring the atomic insert/like contract.
        limits: Store limits, fixed for the process lifetime.
        rng: Random source used for sampling.
    """

    def __init__(
        self,
        repository: AbstractStructureRepository,
        limits: StoreSettings,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.repository = repository
        self.limits = limits
        self.rng = rng or random.SystemRandom()

    def _validate_scene(self, scene: str) -> None:
        if not scene:
            raise InvalidInputError("Scene must not be empty", details={"field": "scene"})
        if len(scene) > self.limits.max_scene_length:
            raise InvalidInputError(
                "Scene name is too long",
                details={
                    "field": "scene",
                    "max_value": self.limits.max_scene_length,
                    "actual_value": len(scene),
                },
            )

    @staticmethod
    def _validate_storable_int(field_name: str, value: int) -> None:
        if not STORAGE_INT_MIN <= value <= STORAGE_INT_MAX:
            raise InvalidInputError(
                f"{field_name} is out of range",
                details={"field": field_name},
            )

    def _validate_draft(self, draft: StructureDraft) -> None:
        """Check a submission against store limits.

        Raises:
            InvalidInputError: If any field is out of bounds.
        """
        self._validate_scene(draft.scene)
        self._validate_storable_int("map_id", draft.map_id)
        self._validate_storable_int("segment", draft.segment)

        if not draft.payload:
            raise InvalidInputError("Structure payload must not be empty", details={"field": "payload"})
        if len(draft.payload) > self.limits.max_payload_bytes:
            raise InvalidInputError(
                "Structure payload is too large",
                details={
                    "field": "payload",
                    "max_value": self.limits.max_payload_bytes,
                    "actual_value": len(draft.payload),
                },
            )

        if not draft.prefab or len(draft.prefab) > MAX_PREFAB_LENGTH:
            raise InvalidInputError(
                f"Prefab must be 1-{MAX_PREFAB_LENGTH} characters",
                details={"field": "prefab", "max_value": MAX_PREFAB_LENGTH},
            )
        if draft.username is not None and len(draft.username) > MAX_USERNAME_LENGTH:
            raise InvalidInputError(
                f"Username must be at most {MAX_USERNAME_LENGTH} characters",
                details={"field": "username", "max_value": MAX_USERNAME_LENGTH},
            )

    def submit(self, owner: int, draft: StructureDraft, now: float) -> Structure:
        """Store a new structure, evicting the bucket's oldest ones beyond the cap.

        Args:
            owner: Steam id of the submitter.
            draft: Client-supplied structure fields.
            now: Current time in seconds.

        Returns:
            The stored structure (its ``id`` is the new StructureId).

        Raises:
            InvalidInputError: If the draft violates store limits.
            StorageUnavailableError: If the repository fails.
        """
        self._validate_draft(draft)

        outcome = self.repository.insert_and_prune(
            owner,
            draft,
            created_at=int(now * 1000),
            max_per_bucket=self.limits.max_user_structs_saved_per_scene,
        )

        logger.info(
            "structure.submitted",
            extra={
                "structure_id": outcome.structure.id,
                "steam_id": owner,
                "scene": draft.scene,
                "prefab": draft.prefab,
                "payload_bytes": len(draft.payload),
            },
        )
        if outcome.evicted_ids:
            logger.info(
                "structure.evicted",
                extra={
                    "steam_id": owner,
                    "scene": draft.scene,
                    "evicted_ids": list(outcome.evicted_ids),
                },
            )
        return outcome.structure

    def resolve_limit(self, limit: int | None) -> int:
        """Apply the default and clamp into ``[1, MAX_REQUESTED_STRUCTS]``."""
        if limit is None:
            limit = self.limits.default_random_limit
        return clamp(limit, 1, self.limits.max_requested_structs)

    def random_sample(
        self,
        scene: str,
        limit: int | None,
        now: float,
        *,
        map_id: int | None = None,
        exclude_prefabs: frozenset[str] = frozenset(),
    ) -> list[Structure]:
        """Return up to ``limit`` random structures of ``scene`` (all owners).

        Fewer structures than requested is not an error; order is arbitrary.

        Raises:
            InvalidInputError: If the scene name is invalid.
            StorageUnavailableError: If the repository fails.
        """
        self._validate_scene(scene)
        if map_id is not None:
            self._validate_storable_int("map_id", map_id)

        query = SampleQuery(
            scene=scene,
            limit=self.resolve_limit(limit),
            map_id=map_id,
            exclude_prefabs=frozenset(exclude_prefabs),
        )
        structures = self.repository.sample(query, self.rng)

        logger.debug(
            "structure.sampled",
            extra={
                "scene": scene,
                "requested": limit,
                "limit": query.limit,
                "returned": len(structures),
            },
        )
        return structures

    def like(self, structure_id: int, liker: int, now: float, *, count: int = 1) -> int:
        """Add likes to a structure and return its new like count.

        Args:
            structure_id: Target structure.
            liker: Steam id of the player liking it.
            now: Current time in seconds.
            count: Likes to add, clamped to ``[1, MAX_LIKES_PER_REQUEST]``.

        Raises:
            InvalidInputError: If the player likes their own structure.
            NotFoundError: If the structure does not exist (or was evicted).
            StorageUnavailableError: If the repository fails.
        """
        count = clamp(count, 1, self.limits.max_likes_per_request)

        # Ids are positive 64-bit integers; anything else cannot name a structure.
        if not 1 <= structure_id <= STORAGE_INT_MAX:
            raise NotFoundError(details={"structure_id": structure_id})

        target = self.repository.get(structure_id)
        if target is not None and target.owner == liker:
            raise InvalidInputError(
                "Players cannot like their own structures",
                details={"structure_id": structure_id},
            )

        # A missing target surfaces as NotFoundError from the repository, which
        # also covers an eviction racing between the lookup and the increment.
        likes = self.repository.add_likes(structure_id, liker, count)

        logger.info(
            "structure.liked",
            extra={
                "structure_id": structure_id,
                "steam_id": liker,
                "count": count,
                "likes": likes,
            },
        )
        return likes

    def user_stats(self, user_id: int) -> UserStats:
        return self.repository.user_stats(user_id)

    def bucket(self, scene: str, owner: int) -> list[Structure]:
        """Live structures of one bucket, oldest first."""
        return self.repository.bucket(scene, owner)
