"""
Interface definitions for analyzer cache components.

Intent:
Defines the protocols that QueryCache depends on, so the persistent blob
store and the analyzer client can be swapped (another storage driver, a fake
client in tests) without touching the orchestration code.
"""
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from .profiles import TypeProfile


@runtime_checkable
class IBlobStore(Protocol):
    """
    Interface for persistent key/value blob storage.

    Intent:
    The persistent cache tier stores two small documents per content key.
    Any backend that can read, atomically write and delete named blobs can
    hold them. Names are relative, "/"-separated paths.

    There is no multi-blob transaction: readers must tolerate one document
    of a pair being absent or older than the other.
    """

    async def read(self, name: str) -> Optional[bytes]:
        """
        Read a blob.

        Returns:
            The blob bytes, or None if no blob has that name

        Raises:
            CacheStorageError: If the blob exists but cannot be read
        """
        ...

    async def read_many(self, names: Sequence[str]) -> dict[str, Optional[bytes]]:
        """
        Read several blobs at once.

        Returns:
            Mapping of every requested name to its bytes, or None if absent
        """
        ...

    async def write(self, name: str, data: bytes) -> None:
        """
        Create or overwrite a blob atomically.

        Readers see either the old or the new bytes, never a partial write.

        Raises:
            CacheStorageError: If the write fails
        """
        ...

    async def delete(self, name: str) -> bool:
        """
        Delete a blob if it exists.

        Returns:
            True if a blob was deleted, False if there was none
        """
        ...


@runtime_checkable
class IAnalyzerClient(Protocol):
    """
    Interface for something that can query the analyzer service.

    Implementations must raise AnalyzerSystemError when the service cannot
    be used and AnalyzerParserError when it rejects the document.
    """

    async def query(
        self, profile: TypeProfile, file_path: Path, metadata_only: bool
    ) -> dict[str, Any]:
        """
        Analyze one file.

        Args:
            profile: Profile supplying OCR settings
            file_path: Local file to submit
            metadata_only: True to request metadata only, False for
                metadata plus extracted text

        Returns:
            The raw property map; text is under TEXT_PROPERTY
        """
        ...
