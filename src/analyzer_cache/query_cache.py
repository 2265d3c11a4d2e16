"""
Main QueryCache implementation
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .config import AnalyzerConfig
from .exceptions import AnalyzerParserError, CacheConfigurationError, insist
from .file_storage import FileSystemBlobStore, PersistentCache
from .hashing import ContentHasher
from .interfaces import IAnalyzerClient, IBlobStore
from .memory_cache import LocalCache
from .metrics import MetricsCollector, QueryMetrics
from .models import CacheEntry, utc_now
from .object_cache import ObjectCacheTier
from .profiles import TypeProfile

logger = logging.getLogger(__name__)


class QueryCache:
    """
    Analyzer results cache with three tiers.

    Intent:
    Querying the analyzer is slow (seconds to minutes for large documents),
    while a file's content, and therefore the analyzer's answer, never
    changes for a given content hash. This class answers metadata/text
    requests from the cheapest tier that knows enough, and only queries the
    analyzer for what is still unknown.

    Tiers, in lookup order:
    - local: process-local LRU; avoids re-querying the same file several
      times within one request
    - shared: cross-process object cache; reserved, currently disabled
    - persistent: JSON documents in a blob store, per profile; survives
      restarts and is shared across hosts

    Key Design Decisions:
    - Entries are keyed by content hash, not path
    - Partially resolved entries are upgraded tier by tier; a shallower
      tier's resolved facets are never overwritten by a deeper tier
    - Parser failures are cached like successes; system failures never are
    - Every change is written through all enabled tiers before returning
    """

    def __init__(
        self,
        config: AnalyzerConfig,
        client: IAnalyzerClient,
        *,
        hasher: Optional[ContentHasher] = None,
        blob_stores: Optional[dict[str, IBlobStore]] = None,
        object_cache: Optional[ObjectCacheTier] = None,
        metrics: Optional[QueryMetrics] = None,
    ):
        """
        Initialize the query cache.

        Args:
            config: Configuration; supplies the local cache size and the
                directories of named persistent cache backends
            client: Analyzer client used on cache misses
            hasher: Content hasher; a fresh one is created if omitted
            blob_stores: Explicit blob stores by backend name, taking
                precedence over config.cache_backends
            object_cache: Shared tier implementation
            metrics: Metrics sink
        """
        self.config = config
        self.client = client
        self.hasher = hasher or ContentHasher()
        self.local_cache = LocalCache(config.local_cache_size)
        self.object_cache = object_cache or ObjectCacheTier()
        self.metrics = metrics or QueryMetrics()
        self._blob_stores: dict[str, IBlobStore] = dict(blob_stores or {})
        self._persistent: dict[str, PersistentCache] = {}

    # Persistent tier

    def _persistent_for(self, profile: TypeProfile) -> Optional[PersistentCache]:
        """
        Get the persistent tier for a profile, or None if it has none.

        Raises:
            CacheConfigurationError: If the profile names an unknown backend
        """
        name = profile.cache_backend
        if name is None:
            return None

        persistent = self._persistent.get(name)
        if persistent is None:
            store = self._blob_stores.get(name)
            if store is None:
                root = self.config.cache_backends.get(name)
                if root is None:
                    raise CacheConfigurationError(f"Unknown cache backend '{name}'")
                store = FileSystemBlobStore(root)
            persistent = PersistentCache(store)
            self._persistent[name] = persistent
        return persistent

    async def _maybe_upgrade_from_persistent(
        self, profile: TypeProfile, entry: CacheEntry, metadata_only: bool
    ) -> tuple[CacheEntry, bool]:
        """
        Resolve more of entry from the persistent tier, if enabled.

        The stored entry is expired with the profile's cutoffs before use,
        so stale results in the persistent tier never resurface.

        Returns:
            (entry, upgraded) where upgraded says whether entry changed
        """
        result = entry
        persistent = self._persistent_for(profile)
        if persistent is not None:
            stored = await persistent.fetch(entry.key, metadata_only)
            if stored is not None:
                stored = self._expire(profile, stored)
                result = entry.resolve_from_other(stored)
        return result, result is not entry

    # Write-through and lookup

    @staticmethod
    def _expire(profile: TypeProfile, entry: CacheEntry) -> CacheEntry:
        return entry.expire(profile.expire_success_before, profile.expire_failure_before)

    async def _stash(self, profile: TypeProfile, file_path: Path, entry: CacheEntry) -> None:
        """Write entry through every enabled tier."""
        self.hasher.record(file_path, entry.key)
        await self.local_cache.add(entry)
        await self.object_cache.maybe_store(profile, entry)
        persistent = self._persistent_for(profile)
        if persistent is not None:
            await persistent.store(entry)

    async def _fetch(
        self, profile: TypeProfile, file_path: Path, key: str, metadata_only: bool
    ) -> tuple[CacheEntry, bool]:
        """
        Build the best entry the cache tiers can offer for key.

        Returns:
            (entry, local_only) where local_only says the local tier alone
            supplied the entry
        """
        entry = await self.local_cache.get(key)
        if entry is None:
            entry = CacheEntry.new_empty(key)

        expired = self._expire(profile, entry)
        if expired is not entry:
            logger.debug("Expired cached results for key %s", key)
            self.metrics.expirations += 1
            entry = expired
            await self._stash(profile, file_path, entry)

        local_only = True

        if not entry.is_sufficient(metadata_only):
            entry, upgraded = await self.object_cache.maybe_upgrade(profile, entry, metadata_only)
            if upgraded:
                local_only = False
                self.metrics.object_cache_upgrades += 1
                await self.local_cache.add(entry)

        if not entry.is_sufficient(metadata_only):
            entry, upgraded = await self._maybe_upgrade_from_persistent(
                profile, entry, metadata_only
            )
            if upgraded:
                local_only = False
                self.metrics.persistent_upgrades += 1
                await self.object_cache.maybe_store(profile, entry)
                await self.local_cache.add(entry)

        return entry, local_only

    async def _query_analyzer(
        self,
        entry: CacheEntry,
        now: datetime,
        profile: TypeProfile,
        file_path: Path,
        metadata_only: bool,
    ) -> CacheEntry:
        """
        Query the analyzer and fold the outcome into entry.

        Raises:
            AnalyzerSystemError: Propagated untouched; nothing is cached
        """
        self.metrics.analyzer_queries += 1
        try:
            response = await self.client.query(profile, file_path, metadata_only)
        except AnalyzerParserError as e:
            logger.debug("Analyzer failure for %s: %s", file_path, e)
            return entry.update_from_failure(now, metadata_only, e)
        logger.debug("Analyzer response for %s: %r", file_path, response)
        return entry.update_from_success(now, metadata_only, response)

    async def _resolve_entry(
        self,
        profile: TypeProfile,
        file_path: Path,
        metadata_only: bool,
        key: Optional[str],
        collector: MetricsCollector,
    ) -> CacheEntry:
        file_path = Path(file_path)
        key = await self.hasher.hash_of(file_path, key)

        entry, local_only = await self._fetch(profile, file_path, key, metadata_only)

        if entry.is_sufficient(metadata_only):
            logger.debug("Cache hit for key %s at path %s", key, file_path)
            collector.mark_cache_hit()
            if local_only:
                self.metrics.local_hits += 1
            return entry

        logger.debug("Cache miss for key %s at path %s", key, file_path)

        now = utc_now()

        # Known text (even a failure) needs no second text query; only the
        # metadata question is open.
        query_metadata_only = metadata_only or not entry.is_text_unknown()

        entry = await self._query_analyzer(entry, now, profile, file_path, query_metadata_only)
        if entry.is_metadata_unknown():
            # Only a failed text query leaves metadata unknown. A metadata-only
            # query may still succeed, so ask that question directly.
            insist(not query_metadata_only, "metadata is resolved after a metadata-only query")
            logger.debug("Requery %s as metadata-only", file_path)
            self.metrics.requeries += 1
            entry = await self._query_analyzer(entry, now, profile, file_path, True)
            insist(not entry.is_metadata_unknown(), "metadata is resolved after requery")

        await self._stash(profile, file_path, entry)
        return entry

    async def resolve_entry(
        self,
        profile: TypeProfile,
        file_path: Path,
        metadata_only: bool,
        key: Optional[str] = None,
    ) -> CacheEntry:
        """
        Get an entry resolved enough to answer the request.

        Intent:
        Cascades local -> shared -> persistent, applying the profile's
        expiry cutoffs, and queries the analyzer only when the entry still
        cannot answer. The returned entry has been written through every
        enabled tier.

        Args:
            profile: Profile for the file's mime-type
            file_path: Local path of the file
            metadata_only: True if only metadata is needed
            key: Content key, if already known to the caller

        Returns:
            CacheEntry with metadata resolved (and text too, unless
            metadata_only)

        Raises:
            AnalyzerSystemError: If the analyzer had to be queried and could
                not be used
            CacheStorageError: If the persistent tier fails
            CacheConfigurationError: If the profile names an unknown backend
        """
        with MetricsCollector(self.metrics) as collector:
            return await self._resolve_entry(profile, file_path, metadata_only, key, collector)

    async def resolve(
        self,
        profile: TypeProfile,
        file_path: Path,
        metadata_only: bool,
        key: Optional[str] = None,
    ) -> tuple[dict[str, Any], list[str]]:
        """
        Get metadata and extracted text for a file, from cache or analyzer.

        Args:
            profile: Profile for the file's mime-type
            file_path: Local path of the file
            metadata_only: True if only metadata is needed
            key: Content key, if already known to the caller

        Returns:
            (metadata, text); text is [""] for metadata-only requests

        Raises:
            AnalyzerSystemError: If the analyzer could not be used
            AnalyzerParserError: If the analyzer failed on this content,
                now or as recorded in the cache (CachedParserError)
        """
        with MetricsCollector(self.metrics) as collector:
            entry = await self._resolve_entry(profile, file_path, metadata_only, key, collector)
            if metadata_only:
                return entry.get_metadata_or_raise(), [""]
            return entry.get_metadata_or_raise(), entry.get_text_or_raise()

    def get_statistics(self) -> dict:
        """Get query metrics plus current local tier occupancy."""
        stats = self.metrics.to_dict()
        stats["local_entries"] = len(self.local_cache)
        return stats
