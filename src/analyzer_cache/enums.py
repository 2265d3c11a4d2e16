"""
Strategy enums used by type profiles
"""
from enum import Enum


class HandlerStrategy(str, Enum):
    """
    How the host platform should install a handler for a mime-type.

    Only consumed by the host's dispatch layer; carried on the profile so
    that a single resolved profile describes everything about a type.
    """

    FALLBACK = "fallback"  # analyzer-only handler if there is no other handler
    OVERRIDE = "override"  # analyzer-only handler always
    WRAPPING = "wrapping"  # wrap any other handler, else analyzer-only


class ContentStrategy(str, Enum):
    """How analyzer text is combined with text from another handler."""

    COMBINE = "combine"
    ONLY_TIKA = "only_tika"
    PREFER_TIKA = "prefer_tika"
    PREFER_OTHER = "prefer_other"
    NO_TIKA = "no_tika"


class ContentComposition(str, Enum):
    """What goes into the text produced for full-text search."""

    TEXT = "text"
    METADATA = "metadata"
    TEXT_AND_METADATA = "text_and_metadata"


class MetadataStrategy(str, Enum):
    """How analyzer metadata is combined with metadata from another handler."""

    COMBINE = "combine"
    ONLY_TIKA = "only_tika"
    PREFER_TIKA = "prefer_tika"
    PREFER_OTHER = "prefer_other"
    NO_TIKA = "no_tika"
