"""In-memory TTL cache for verified session tickets.

Bounds how often the identity authority is contacted when a client
replays the same ticket in a short window. Entries expire at a fixed
point in time: a hit never extends the lifetime, so trust in a ticket is
never held longer than the configured TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from hashlib import sha256
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheItem(Generic[V]):
    value: V
    expires_at: float


class SimpleTTLCache(Generic[V]):
    """Thread-safe TTL cache, least-recently-used entry dropped when full.

    Args:
        ttl_seconds: Lifetime of every entry, measured from ``set``.
        max_entries: Capacity; ``None`` disables the bound.
        clock: Time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        max_entries: int | None = 1024,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1 or None")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._items: OrderedDict[str, CacheItem[V]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = self._misses = self._evictions = 0

    def get(self, key: str) -> V | None:
        """Return the live value for ``key`` or None (missing or expired)."""

        with self._lock:
            item = self._items.get(key)
            if item is not None and self._clock() >= item.expires_at:
                del self._items[key]
                self._evictions += 1
                item = None
            if item is None:
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:16]})
                return None
            self._items.move_to_end(key)
            self._hits += 1
            return item.value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            now = self._clock()
            self._drop_expired(now)
            self._items[key] = CacheItem(value=value, expires_at=now + self._ttl)
            self._items.move_to_end(key)
            if self._max_entries is not None:
                while len(self._items) > self._max_entries:
                    self._items.popitem(last=False)
                    self._evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._hits = self._misses = self._evictions = 0

    def stats(self) -> dict[str, int | float | None]:
        """Counters for diagnostics; never exposes keys or values."""

        with self._lock:
            return {
                "ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _drop_expired(self, now: float) -> None:
        expired = [key for key, item in self._items.items() if item.expires_at <= now]
        for key in expired:
            del self._items[key]
        self._evictions += len(expired)


def build_cache_key(secret: bytes, *, salt: str | None = None) -> str:
    """Hex SHA-256 of ``salt`` and ``secret``; the secret never appears in the key.

    Args:
        secret: Raw credential bytes (a session ticket).
        salt: Optional partition, such as the Steam app id.
    """

    digest = sha256()
    if salt:
        digest.update(salt.encode())
        digest.update(b"\x00")
    digest.update(secret)
    return digest.hexdigest()
