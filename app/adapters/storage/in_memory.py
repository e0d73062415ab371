"""In-memory structure repository.

Notes:
- Per-process only: contents are lost on restart.
- Each (scene, owner) bucket has its own lock and an ordered index of
  ``(created_at, id)`` pairs, so the eviction candidate is always at the
  front and independent buckets never contend.
- Each scene keeps a dense id list with a position map (swap-remove) so a
  random sample picks indices instead of shuffling the whole scene.
"""

from __future__ import annotations

import bisect
import itertools
import logging
import random
import threading
from dataclasses import dataclass, field, replace

from app.adapters.storage.base import (
    AbstractStructureRepository,
    InsertOutcome,
    SampleQuery,
    Structure,
    StructureDraft,
    UserStats,
)
from app.core.errors import NotFoundError
from app.utils.sampling import reservoir_sample

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    lock: threading.Lock = field(default_factory=threading.Lock)
    order: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class _SceneIndex:
    lock: threading.Lock = field(default_factory=threading.Lock)
    ids: list[int] = field(default_factory=list)
    positions: dict[int, int] = field(default_factory=dict)

    def add(self, structure_id: int) -> None:
        self.positions[structure_id] = len(self.ids)
        self.ids.append(structure_id)

    def remove(self, structure_id: int) -> None:
        pos = self.positions.pop(structure_id, None)
        if pos is None:
            return
        last = self.ids.pop()
        if last != structure_id:
            self.ids[pos] = last
            self.positions[last] = pos


class InMemoryStructureRepository(AbstractStructureRepository):
    """Arena-style bounded multimap of structures keyed by (scene, owner).

    Lock order is always bucket -> scene index -> stats, and no bucket lock
    is ever held while acquiring another bucket's lock.
    """

    def __init__(self) -> None:
        self._structures: dict[int, Structure] = {}
        self._buckets: dict[tuple[str, int], _Bucket] = {}
        self._scenes: dict[str, _SceneIndex] = {}
        self._stats: dict[int, UserStats] = {}
        self._registry_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._structures)

    def _bucket_for(self, key: tuple[str, int]) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            with self._registry_lock:
                bucket = self._buckets.setdefault(key, _Bucket())
        return bucket

    def _scene_for(self, scene: str) -> _SceneIndex:
        index = self._scenes.get(scene)
        if index is None:
            with self._registry_lock:
                index = self._scenes.setdefault(scene, _SceneIndex())
        return index

    def _next_id(self) -> int:
        with self._registry_lock:
            return next(self._ids)

    def insert_and_prune(
        self,
        owner: int,
        draft: StructureDraft,
        *,
        created_at: int,
        max_per_bucket: int,
    ) -> InsertOutcome:
        if max_per_bucket < 1:
            raise ValueError("max_per_bucket must be >= 1")

        bucket = self._bucket_for((draft.scene, owner))
        scene_index = self._scene_for(draft.scene)

        with bucket.lock:
            structure = Structure(
                id=self._next_id(),
                owner=owner,
                scene=draft.scene,
                prefab=draft.prefab,
                payload=draft.payload,
                created_at=created_at,
                map_id=draft.map_id,
                segment=draft.segment,
                username=draft.username,
            )
            bisect.insort(bucket.order, (structure.created_at, structure.id))

            overflow = len(bucket.order) - max_per_bucket
            evicted: tuple[int, ...] = ()
            if overflow > 0:
                evicted = tuple(sid for _, sid in bucket.order[:overflow])
                del bucket.order[:overflow]

            # Samplers only see ids through the scene index, so publishing the
            # row first and unpublishing evictions last keeps every indexed id
            # resolvable.
            self._structures[structure.id] = structure
            with scene_index.lock:
                for sid in evicted:
                    scene_index.remove(sid)
                if structure.id not in evicted:
                    scene_index.add(structure.id)
            for sid in evicted:
                self._structures.pop(sid, None)

        return InsertOutcome(structure=structure, evicted_ids=evicted)

    def get(self, structure_id: int) -> Structure | None:
        return self._structures.get(structure_id)

    def bucket(self, scene: str, owner: int) -> list[Structure]:
        bucket = self._buckets.get((scene, owner))
        if bucket is None:
            return []
        with bucket.lock:
            return [self._structures[sid] for _, sid in bucket.order]

    def sample(self, query: SampleQuery, rng: random.Random) -> list[Structure]:
        scene_index = self._scenes.get(query.scene)
        if scene_index is None or query.limit < 1:
            return []

        with scene_index.lock:
            if not query.filtered:
                k = min(query.limit, len(scene_index.ids))
                picked = rng.sample(scene_index.ids, k)
                return [self._structures[sid] for sid in picked]

            candidates = (
                structure
                for structure in (self._structures[sid] for sid in scene_index.ids)
                if query.matches(structure)
            )
            picked_structures = reservoir_sample(candidates, query.limit, rng)

        rng.shuffle(picked_structures)
        return picked_structures

    def add_likes(self, structure_id: int, liker: int, count: int) -> int:
        if count < 1:
            raise ValueError("count must be >= 1")

        current = self._structures.get(structure_id)
        if current is None:
            raise NotFoundError(details={"structure_id": structure_id})

        bucket = self._bucket_for(current.bucket_key)
        with bucket.lock:
            # Re-read under the bucket lock: an eviction may have won the race.
            current = self._structures.get(structure_id)
            if current is None:
                raise NotFoundError(details={"structure_id": structure_id})
            updated = replace(current, likes=current.likes + count)
            self._structures[structure_id] = updated

            with self._stats_lock:
                sender = self._stats.get(liker, UserStats(user_id=liker))
                self._stats[liker] = replace(sender, likes_sent=sender.likes_sent + count)
                receiver = self._stats.get(updated.owner, UserStats(user_id=updated.owner))
                self._stats[updated.owner] = replace(
                    receiver, likes_received=receiver.likes_received + count
                )

        return updated.likes

    def user_stats(self, user_id: int) -> UserStats:
        with self._stats_lock:
            return self._stats.get(user_id, UserStats(user_id=user_id))
