"""
Tests for the in-memory LRU cache tier
"""
import asyncio
from datetime import datetime, timezone

import pytest

from analyzer_cache.memory_cache import LocalCache
from analyzer_cache.models import CacheEntry

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_entry(key: str, title: str = "doc") -> CacheEntry:
    return CacheEntry.new_empty(key).update_from_success(NOW, True, {"title": title})


class TestLocalCache:
    """
    Test cases for LocalCache implementation
    """

    def test_initialization(self):
        """
        Test local cache initialization with an entry limit
        """
        cache = LocalCache(max_entries=10)
        assert cache.max_entries == 10
        assert cache.enabled
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_add_and_get_entry(self):
        """
        Test adding and retrieving entries by content key
        """
        cache = LocalCache(max_entries=10)
        entry = make_entry("abc123")

        await cache.add(entry)
        assert len(cache) == 1

        retrieved = await cache.get("abc123")
        assert retrieved is entry
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_add_replaces_entry_for_key(self):
        """
        Test that adding a newer entry for a key replaces the old one
        """
        cache = LocalCache(max_entries=10)
        await cache.add(make_entry("abc", "old"))
        newer = make_entry("abc", "new")
        await cache.add(newer)

        assert len(cache) == 1
        assert await cache.get("abc") is newer

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        """
        Test LRU eviction when the cache is full
        """
        cache = LocalCache(max_entries=2)

        await cache.add(make_entry("k0"))
        await cache.add(make_entry("k1"))

        # Touch k0 so k1 becomes least recently used
        assert await cache.get("k0") is not None

        await cache.add(make_entry("k2"))

        assert len(cache) == 2
        assert await cache.get("k1") is None
        assert await cache.get("k0") is not None
        assert await cache.get("k2") is not None

    @pytest.mark.asyncio
    async def test_zero_size_disables_cache(self):
        """
        Test that a zero entry limit stores nothing
        """
        cache = LocalCache(max_entries=0)
        assert not cache.enabled

        await cache.add(make_entry("abc"))
        assert len(cache) == 0
        assert await cache.get("abc") is None

    @pytest.mark.asyncio
    async def test_remove_entry(self):
        """
        Test removing entries from cache
        """
        cache = LocalCache(max_entries=10)
        await cache.add(make_entry("abc"))

        assert await cache.remove("abc") is True
        assert await cache.get("abc") is None
        assert await cache.remove("abc") is False

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        """
        Test clearing all entries
        """
        cache = LocalCache(max_entries=10)
        for i in range(5):
            await cache.add(make_entry(f"k{i}"))

        await cache.clear()
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_concurrent_access(self):
        """
        Test concurrent adds and gets stay within the limit
        """
        cache = LocalCache(max_entries=5)

        async def worker(i: int):
            await cache.add(make_entry(f"k{i}"))
            await cache.get(f"k{i}")

        await asyncio.gather(*(worker(i) for i in range(20)))
        assert len(cache) == 5
