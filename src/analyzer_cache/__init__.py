"""
Analyzer Cache - content-keyed caching of document analysis results
"""
from .client import AnalyzerClient
from .config import AnalyzerConfig
from .enums import ContentComposition, ContentStrategy, HandlerStrategy, MetadataStrategy
from .exceptions import (
    AnalyzerCacheError,
    AnalyzerError,
    AnalyzerParserError,
    AnalyzerSystemError,
    CacheConfigurationError,
    CachedParserError,
    CacheStorageError,
    InvariantViolation,
)
from .file_storage import FileSystemBlobStore, PersistentCache
from .hashing import ContentHasher
from .interfaces import IAnalyzerClient, IBlobStore
from .metrics import QueryMetrics
from .models import CachedFailure, CacheEntry
from .profiles import TypeProfile, profile_for_mime_type
from .query_cache import QueryCache
from .service import ExtractionService

__version__ = "0.1.0"
__all__ = [
    "QueryCache",
    "ExtractionService",
    "AnalyzerClient",
    "AnalyzerConfig",
    "TypeProfile",
    "profile_for_mime_type",
    "HandlerStrategy",
    "ContentStrategy",
    "ContentComposition",
    "MetadataStrategy",
    "CacheEntry",
    "CachedFailure",
    "ContentHasher",
    "FileSystemBlobStore",
    "PersistentCache",
    "QueryMetrics",
    "IBlobStore",
    "IAnalyzerClient",
    "AnalyzerCacheError",
    "AnalyzerError",
    "AnalyzerSystemError",
    "AnalyzerParserError",
    "CachedParserError",
    "CacheStorageError",
    "CacheConfigurationError",
    "InvariantViolation",
]
