"""Structure repository interface and domain records.

The structure service depends on this abstraction so the storage engine
(in-memory arena, SQLite...) can change without touching eviction,
sampling or like-counting rules. Implementations must honor the atomicity
contract documented on each method.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Range of integer columns every backend can store (SQLite INTEGER is signed 64-bit)
STORAGE_INT_MIN = -(2**63)
STORAGE_INT_MAX = 2**63 - 1


@dataclass(frozen=True)
class StructureDraft:
    """Client-supplied part of a structure, before the server assigns ids.

    Attributes:
        scene: Game level the structure belongs to.
        prefab: Name of the placed object (rope, piton...).
        payload: Opaque placement data owned by the game client.
        map_id: Map/seed the scene was generated from.
        segment: Level segment the structure sits in.
        username: Display name of the owner at submission time.
    """

    scene: str
    prefab: str
    payload: bytes
    map_id: int = 0
    segment: int = 0
    username: str | None = None


@dataclass(frozen=True)
class Structure:
    """A stored structure.

    Attributes:
        id: Server-assigned, monotonically increasing id.
        owner: Steam id of the submitter.
        created_at: Creation time in epoch milliseconds.
        likes: Non-negative like counter.
    """

    id: int
    owner: int
    scene: str
    prefab: str
    payload: bytes
    created_at: int
    likes: int = 0
    map_id: int = 0
    segment: int = 0
    username: str | None = None

    @property
    def bucket_key(self) -> tuple[str, int]:
        return (self.scene, self.owner)


@dataclass(frozen=True)
class InsertOutcome:
    """Result of an insert: the stored row plus ids evicted to make room."""

    structure: Structure
    evicted_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class SampleQuery:
    """Random sample request, already clamped by the service.

    Attributes:
        scene: Scene to sample from (across all owners).
        limit: Maximum number of structures to return.
        map_id: Only structures from this map, when set.
        exclude_prefabs: Prefab names to leave out.
    """

    scene: str
    limit: int
    map_id: int | None = None
    exclude_prefabs: frozenset[str] = field(default_factory=frozenset)

    @property
    def filtered(self) -> bool:
        return self.map_id is not None or bool(self.exclude_prefabs)

    def matches(self, structure: Structure) -> bool:
        if structure.scene != self.scene:
            return False
        if self.map_id is not None and structure.map_id != self.map_id:
            return False
        return structure.prefab not in self.exclude_prefabs


@dataclass(frozen=True)
class UserStats:
    """Like tallies for one player."""

    user_id: int
    likes_sent: int = 0
    likes_received: int = 0


class AbstractStructureRepository(ABC):
    """Interface for structure persistence."""

    @abstractmethod
    def insert_and_prune(
        self,
        owner: int,
        draft: StructureDraft,
        *,
        created_at: int,
        max_per_bucket: int,
    ) -> InsertOutcome:
        """Insert a structure and evict the oldest ones of its bucket while over cap.

        The insert and the evictions are one atomic unit with respect to any
        other operation on the same (scene, owner) bucket; no reader may
        observe the bucket holding more than ``max_per_bucket`` structures.
        Eviction order is ``(created_at, id)`` ascending.

        Raises:
            StorageUnavailableError: If the backend fails.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, structure_id: int) -> Structure | None:
        """Return the structure or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def bucket(self, scene: str, owner: int) -> list[Structure]:
        """Return the live structures of one bucket, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def sample(self, query: SampleQuery, rng: random.Random) -> list[Structure]:
        """Uniform random selection without replacement of up to ``query.limit`` matches."""
        raise NotImplementedError

    @abstractmethod
    def add_likes(self, structure_id: int, liker: int, count: int) -> int:
        """Atomically add ``count`` likes and update both players' tallies.

        Returns:
            The like counter after the increment.

        Raises:
            NotFoundError: If the structure no longer exists.
            StorageUnavailableError: If the backend fails.
        """
        raise NotImplementedError

    @abstractmethod
    def user_stats(self, user_id: int) -> UserStats:
        """Return like tallies (zeros for unknown players)."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources, if any."""
        return None
