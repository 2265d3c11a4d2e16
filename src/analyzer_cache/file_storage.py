"""
File system storage for the persistent cache tier
"""
import asyncio
import json
import logging
import os
import uuid
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Sequence

import aiofiles

from .exceptions import CacheStorageError, insist
from .interfaces import IBlobStore
from .models import CacheEntry

logger = logging.getLogger(__name__)


class FileSystemBlobStore:
    """
    Blob store backed by a directory tree on the local file system.

    Intent:
    The default driver for the persistent cache tier. The directory may be
    shared between worker processes or hosts (e.g. over NFS), so every write
    goes to a uniquely named temporary file first and is then renamed into
    place; readers see either the old or the new document, never half of one.

    Names are relative "/"-separated paths below base_path; callers choose
    the directory layout.
    """

    def __init__(self, base_path: Path):
        """
        Initialize the store.

        Args:
            base_path: Root directory; created lazily on first write
        """
        self.base_path = Path(base_path)

    def _path_for(self, name: str) -> Path:
        relative = PurePosixPath(name)
        if relative.is_absolute() or ".." in relative.parts:
            raise CacheStorageError(f"Invalid blob name: {name}")
        return self.base_path.joinpath(*relative.parts)

    async def read(self, name: str) -> Optional[bytes]:
        path = self._path_for(name)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheStorageError(f"Failed to read '{path}': {e}") from e

    async def read_many(self, names: Sequence[str]) -> dict[str, Optional[bytes]]:
        results = await asyncio.gather(*(self.read(name) for name in names))
        return dict(zip(names, results))

    async def write(self, name: str, data: bytes) -> None:
        """
        Create or overwrite a blob via write-to-temp then rename.

        Raises:
            CacheStorageError: If the directory or file cannot be written
        """
        path = self._path_for(name)
        temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
            os.replace(temp_path, path)
        except OSError as e:
            try:
                temp_path.unlink()
            except OSError:
                pass  # Temp file was never created
            raise CacheStorageError(f"Failed to write '{path}': {e}") from e

    async def delete(self, name: str) -> bool:
        """
        Delete a blob. Directories are left in place for concurrent writers.

        Returns:
            True if the blob was deleted, False if it did not exist
        """
        path = self._path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheStorageError(f"Failed to delete '{path}': {e}") from e
        return True


class PersistentCache:
    """
    Stores CacheEntry values as JSON documents in a blob store.

    Intent:
    Long-term tier that survives restarts and avoids hitting the analyzer
    again at all. Each entry is split into a small "base" document
    (everything but the text) and a "contents" document (the extracted
    text), so metadata-only lookups never load potentially large text.

    Storage scheme, for key "abcXXX":

        a/ab/abcXXX.base.json
        a/ab/abcXXX.contents.json

    Bucketing on the first two characters of the key keeps any one
    directory from growing without bound.
    """

    def __init__(self, store: IBlobStore):
        self.blob_store = store

    @staticmethod
    def cache_paths(key: str) -> tuple[str, str, str]:
        """
        Get the storage names for a key.

        Returns:
            (directory, base document name, contents document name)
        """
        insist(len(key) >= 2, f"key '{key}' has at least two characters")
        directory = f"{key[0]}/{key[0]}{key[1]}/"
        return directory, f"{directory}{key}.base.json", f"{directory}{key}.contents.json"

    async def fetch(self, key: str, metadata_only: bool) -> Optional[CacheEntry]:
        """
        Load the entry for a key.

        Args:
            key: Content key
            metadata_only: If True, the contents document is not read and
                the returned entry's text facet is unknown unless it is a
                recorded failure

        Returns:
            CacheEntry, or None if nothing is stored for the key

        Raises:
            CacheStorageError: If a document is not valid JSON
            InvariantViolation: If a document fails schema or key checks
        """
        _, base_name, contents_name = self.cache_paths(key)
        names = [base_name] if metadata_only else [base_name, contents_name]
        blobs = await self.blob_store.read_many(names)

        base_blob = blobs.get(base_name)
        if base_blob is None:
            return None

        logger.debug("Found key %s in persistent cache", key)

        base = self._decode(key, base_name, base_blob)
        contents = None
        contents_blob = blobs.get(contents_name)
        if contents_blob is not None:
            contents = self._decode(key, contents_name, contents_blob)

        entry = CacheEntry.unserialize(base, contents)
        insist(entry.key == key, f"stored key {entry.key} matches requested key {key}")
        return entry

    async def store(self, entry: CacheEntry) -> None:
        """
        Write an entry, replacing whatever was stored for its key.

        The contents document is written before the base document that
        points at it. When the text is not a success any stale contents
        document is removed afterwards.

        Raises:
            CacheStorageError: If a write fails
        """
        base, contents = entry.serialize()
        _, base_name, contents_name = self.cache_paths(entry.key)

        if isinstance(contents, dict):
            await self.blob_store.write(contents_name, self._encode(contents))
        await self.blob_store.write(base_name, self._encode(base))
        if not isinstance(contents, dict):
            await self.blob_store.delete(contents_name)

    @staticmethod
    def _encode(document: dict[str, Any]) -> bytes:
        return json.dumps(document, ensure_ascii=False).encode("utf-8")

    @staticmethod
    def _decode(key: str, name: str, blob: bytes) -> Any:
        try:
            return json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheStorageError(f"Bad JSON for '{key}' in '{name}': {e}") from e
