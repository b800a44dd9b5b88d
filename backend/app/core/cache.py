"""Small TTL cache with an injectable clock."""

from __future__ import annotations

import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar


V = TypeVar("V")


class TTLCache(Generic[V]):
    """Process-local key/value cache whose entries expire after ``ttl_seconds``.

    Each entry is an immutable ``(value, expires_at)`` tuple that is replaced
    as a whole, so concurrent readers on the event loop never see a partially
    written entry.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[V, float]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            # Only drop the entry we looked at; a fresher one may have replaced it
            if self._entries.get(key) is entry:
                del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)
