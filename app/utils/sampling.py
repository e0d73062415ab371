"""Random selection helpers."""

from __future__ import annotations

import random
from typing import Iterable, TypeVar

T = TypeVar("T")


def reservoir_sample(items: Iterable[T], k: int, rng: random.Random) -> list[T]:
    """Uniformly pick up to ``k`` items from a stream of unknown length (Algorithm R).

    Args:
        items: Candidates, consumed once.
        k: Maximum number of items to keep.
        rng: Random source.

    Returns:
        At most ``k`` items, each candidate equally likely to be kept.
    """
    if k <= 0:
        return []

    reservoir: list[T] = []
    for seen, item in enumerate(items):
        if seen < k:
            reservoir.append(item)
            continue
        slot = rng.randint(0, seen)
        if slot < k:
            reservoir[slot] = item
    return reservoir
