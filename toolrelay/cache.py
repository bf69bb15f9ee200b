"""
TTL Cache
=========

Small in-process cache with per-entry expiry.

Entries are only ever evicted when their TTL has passed; there is no early
invalidation. Concurrent writers for the same key store the same value, so the
last write simply wins.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Hashable


class TTLCache:
    """Mapping of key -> (stored_at, value) with a fixed time-to-live."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at < self.ttl:
            return value
        self._entries.pop(key, None)
        return None

    def set(self, key: Hashable, value: Any):
        self._entries[key] = (self._clock(), value)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
