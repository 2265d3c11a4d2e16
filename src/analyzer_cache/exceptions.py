"""
Custom exceptions for the analyzer cache system
"""
import logging
from datetime import datetime
from typing import NoReturn

logger = logging.getLogger(__name__)


class AnalyzerCacheError(Exception):
    """
    Base exception for all recoverable analyzer-cache errors.

    Intent:
    Provides a common base class so callers can catch everything raised by
    this package distinctly from other system errors. InvariantViolation is
    not part of this hierarchy.
    """
    pass


class AnalyzerError(AnalyzerCacheError):
    """
    Base class for classified failures of an analyzer query.

    Intent:
    Every failure that comes out of talking to the analyzer is classified as
    either a system failure or a parser failure. The flag records which kind
    of request (metadata-only or metadata+text) produced it, so callers can
    apply per-facet policies without parsing messages.
    """

    def __init__(self, message: str, metadata_only: bool = False):
        super().__init__(message)
        self.metadata_only = metadata_only

    @property
    def message(self) -> str:
        return str(self)


class AnalyzerSystemError(AnalyzerError):
    """
    Raised when the analyzer service itself could not be used.

    Intent:
    Signals "the service is unreachable or unusable", as opposed to "the
    service looked at this document and rejected it". Says nothing about the
    content, so it is never cached.

    Common scenarios:
    - Retries exhausted on 500/503 or connection errors
    - Local file cannot be opened or stat'ed
    """
    pass


class AnalyzerParserError(AnalyzerError):
    """
    Raised when the analyzer examined the document and could not process it.

    Intent:
    A per-content verdict: the analyzer answered 422, or timed out or dropped
    the connection while working on this specific document. These failures
    are cached durably per content key (subject to failure expiry).
    """
    pass


class CachedParserError(AnalyzerParserError):
    """
    Replay of a parser failure recorded in the cache.

    Carries the time the original failure was recorded.
    """

    def __init__(self, message: str, timestamp: datetime, metadata_only: bool):
        super().__init__(message, metadata_only)
        self.timestamp = timestamp


class CacheStorageError(AnalyzerCacheError):
    """
    Raised when persistent cache storage operations fail.

    Common scenarios:
    - Disk full or permission problems while writing cache documents
    - Cache documents that are not valid JSON
    """
    pass


class CacheConfigurationError(AnalyzerCacheError):
    """
    Raised when configuration cannot be used as given.

    Common scenarios:
    - A profile names a cache backend that is not configured
    """
    pass


class InvariantViolation(RuntimeError):
    """
    Raised when an internal invariant does not hold.

    Intent:
    Indicates a programming error or corrupted data (reading an unknown
    facet, content key mismatch, schema mismatch). It is never part of
    normal control flow and must not be swallowed; handlers for
    AnalyzerCacheError do not catch it.
    """
    pass


def insist(condition: bool, message: str = "") -> None:
    """
    Strictly assert a runtime invariant.

    Logs an error with a stack trace and raises InvariantViolation if
    condition is false. Unlike assert, this is never compiled away.
    """
    if not condition:
        logger.error("Failed to insist that: %s", message, stack_info=True)
        raise InvariantViolation(f"Failed to insist that: {message}")


def unreachable(message: str = "") -> NoReturn:
    """Log and raise for a code path that must never execute."""
    logger.error("Reached the unreachable: %s", message, stack_info=True)
    raise InvariantViolation(f"Reached the unreachable: {message}")
