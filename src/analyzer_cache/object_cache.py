"""
Shared object-cache tier (not yet implemented)
"""
from .exceptions import unreachable
from .models import CacheEntry
from .profiles import TypeProfile


class ObjectCacheTier:
    """
    Placeholder for a cross-process cache tier between local and persistent.

    Intent:
    Reserves the slot in the lookup order (local -> shared -> persistent)
    for an external fast cache such as memcached. Its consistency semantics
    have not been designed, so the tier reports itself disabled for every
    profile, and anything that actually tries to read or write it is an
    invariant violation rather than a silent no-op.
    """

    def is_enabled(self, profile: TypeProfile) -> bool:
        return False

    async def fetch(self, profile: TypeProfile, key: str, metadata_only: bool) -> CacheEntry:
        unreachable("object cache fetch is not implemented")

    async def maybe_store(self, profile: TypeProfile, entry: CacheEntry) -> None:
        """Write entry through to the tier, if enabled for this profile."""
        if self.is_enabled(profile):
            unreachable("object cache store is not implemented")

    async def maybe_upgrade(
        self, profile: TypeProfile, entry: CacheEntry, metadata_only: bool
    ) -> tuple[CacheEntry, bool]:
        """
        Resolve more of entry from this tier, if enabled.

        Returns:
            (entry, upgraded) where upgraded says whether entry changed
        """
        result = entry
        if self.is_enabled(profile):
            other = await self.fetch(profile, entry.key, metadata_only)
            result = entry.resolve_from_other(other)
        return result, result is not entry
