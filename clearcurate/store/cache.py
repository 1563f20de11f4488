"""
Cache - key/value cache with per-entry time-to-live.

The cache is the only shared mutable state between components. It is eventually
consistent: entries are removed when lifecycle events arrive, never versioned.
"""

import copy
import time
from typing import Any, Dict, Optional, Protocol, Tuple


class Cache(Protocol):
    """Cache contract used by the engines."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryCache:
    """
    In-process cache.

    Values are deep-copied on the way in and out so callers never share state
    through a cached object.
    """

    def __init__(self, default_ttl_seconds: Optional[int] = None):
        """
        Initialize the MemoryCache.

        Args:
            default_ttl_seconds: TTL used when ``set`` gets none. None keeps entries forever.
        """
        self.default_ttl_seconds = default_ttl_seconds
        self._entries: Dict[str, Tuple[Optional[float], Any]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._entries[key] = (expires_at, copy.deepcopy(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class NullCache:
    """Cache that stores nothing."""

    async def get(self, key: str) -> Optional[Any]:
        return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None
