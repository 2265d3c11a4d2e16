"""
Content hashing for cache keys
"""
import hashlib
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from .exceptions import AnalyzerSystemError, insist

logger = logging.getLogger(__name__)


class ContentHasher:
    """
    Computes and memoizes content keys for local files.

    Intent:
    The cache is addressed by a hash of file bytes, not by path, so the
    same content uploaded under different names shares one cache entry.
    Hashing a large file is not free, so keys are remembered per path for
    the life of the process.

    Key design decisions:
    - SHA-1 hex digest; collision resistance is not a security concern here,
      only content identity
    - Chunked async reads keep memory flat for large files
    - A key supplied by the host (which often already knows the hash) is
      recorded instead of recomputed, and must agree with any earlier record

    The memo is deliberately never persisted: a path may hold different
    content in a later process.
    """

    def __init__(self, chunk_size: int = 65536):
        """
        Initialize the hasher.

        Args:
            chunk_size: Size of chunks read while hashing
        """
        self.chunk_size = chunk_size
        self._keys: dict[Path, str] = {}

    def known_key(self, file_path: Path) -> Optional[str]:
        """Return the memoized key for a path, if any."""
        return self._keys.get(Path(file_path))

    def record(self, file_path: Path, key: str) -> None:
        """
        Record an externally known key for a path.

        Raises:
            InvariantViolation: If a different key is already recorded,
                meaning path and content have gone out of sync
        """
        path = Path(file_path)
        existing = self._keys.get(path)
        if existing is None:
            self._keys[path] = key
        else:
            insist(existing == key, f"key {key} for {path} matches recorded key {existing}")

    async def hash_of(self, file_path: Path, key: Optional[str] = None) -> str:
        """
        Get the content key for a file.

        Args:
            file_path: Local file path
            key: Key already known for this file, if any

        Returns:
            Hex SHA-1 digest of the file contents

        Raises:
            AnalyzerSystemError: If the file cannot be read
            InvariantViolation: If key disagrees with a recorded key
        """
        path = Path(file_path)
        if key is not None:
            logger.debug("Index key %s for path %s", key, path)
            self.record(path, key)
            return key

        known = self._keys.get(path)
        if known is not None:
            return known

        computed = await self.compute(path)
        self._keys[path] = computed
        logger.debug("Computed key %s for path %s", computed, path)
        return computed

    async def compute(self, file_path: Path) -> str:
        """
        Compute the SHA-1 of a file's contents, bypassing the memo.

        Raises:
            AnalyzerSystemError: If the file cannot be read
        """
        sha1 = hashlib.sha1()
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while chunk := await f.read(self.chunk_size):
                    sha1.update(chunk)
        except OSError as e:
            raise AnalyzerSystemError(f"Failed to calculate hash for '{file_path}': {e}") from e
        return sha1.hexdigest()
