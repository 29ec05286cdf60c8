from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

from .directory import UserRecord

log = logging.getLogger(__name__)

CACHE_SIZE = 100
CACHE_TTL_SECONDS = 300.0


@dataclass
class CacheEntry:
    password_hash: bytes = field(repr=False)
    user: UserRecord


class CredentialCache:
    """LRU map of username -> CacheEntry with a fixed time-to-live.

    Expired entries are dropped lazily on `get`; `set` evicts the least
    recently used entry once `size` is reached.
    """

    def __init__(
        self,
        size: int = CACHE_SIZE,
        ttl: float = CACHE_TTL_SECONDS,
        name: str = "user",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if size < 1:
            raise ValueError("cache size must be >= 1")
        self.size = size
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._items: OrderedDict[str, tuple[float, CacheEntry]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, key: str) -> Optional[CacheEntry]:
        item = self._items.get(key)
        if item is None:
            return None
        expires, entry = item
        if self._clock() >= expires:
            del self._items[key]
            log.debug("%s cache: %r expired", self.name, key)
            return None
        self._items.move_to_end(key)
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        if key in self._items:
            self._items.move_to_end(key)
        elif len(self._items) >= self.size:
            evicted, _ = self._items.popitem(last=False)
            log.debug("%s cache: evicted %r", self.name, evicted)
        self._items[key] = (self._clock() + self.ttl, entry)

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()
