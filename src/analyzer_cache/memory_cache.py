"""
In-memory LRU cache tier
"""
import asyncio
from collections import OrderedDict
from typing import Optional

from .models import CacheEntry


class LocalCache:
    """
    Process-local cache of CacheEntry values with LRU eviction.

    Intent:
    The fastest and least durable tier. Within a single request the host
    tends to ask about the same file several times (text for search,
    metadata for display, again for a thumbnail page); this tier makes the
    repeats free.

    Key design decisions:
    - Bounded by entry count; entries are immutable, so there is no
      per-entry size bookkeeping to keep in sync
    - OrderedDict gives O(1) lookups with LRU ordering
    - max_entries of zero disables the tier entirely
    - Each worker owns its own instance; nothing is shared across processes
    """

    def __init__(self, max_entries: int):
        """
        Initialize local cache with an entry limit.

        Args:
            max_entries: Maximum number of entries kept. When exceeded, the
                least recently used entries are evicted. Zero disables caching.
        """
        self.max_entries = max_entries
        self.entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.max_entries > 0

    def __len__(self) -> int:
        return len(self.entries)

    async def add(self, entry: CacheEntry) -> None:
        """
        Add or replace the entry for its key, evicting LRU entries if needed.

        Args:
            entry: Cache entry to store
        """
        if not self.enabled:
            return

        async with self._lock:
            self.entries[entry.key] = entry
            self.entries.move_to_end(entry.key)

            while len(self.entries) > self.max_entries:
                self.entries.popitem(last=False)

    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Get an entry and mark it most recently used.

        Returns:
            CacheEntry if present, None otherwise
        """
        async with self._lock:
            entry = self.entries.get(key)
            if entry is not None:
                self.entries.move_to_end(key)
            return entry

    async def remove(self, key: str) -> bool:
        """
        Remove an entry.

        Returns:
            True if entry was removed, False if not found
        """
        async with self._lock:
            return self.entries.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all entries from cache."""
        async with self._lock:
            self.entries.clear()
