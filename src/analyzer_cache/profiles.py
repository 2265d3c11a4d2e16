"""
Per-mime-type profiles and their resolution from configuration
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import AnalyzerConfig
from .enums import ContentComposition, ContentStrategy, HandlerStrategy, MetadataStrategy

logger = logging.getLogger(__name__)

# Label used when a mime-type has no profile of its own
FALLBACK_LABEL = "*"

# Block key naming the next label in the inheritance chain
INHERIT_KEY = "inherit"


class TypeProfile(BaseModel):
    """
    Immutable bundle of settings controlling how one mime-type is analyzed.

    Intent:
    Everything the query path needs to know about a file type travels in
    this one value: OCR behaviour, merge strategies, which errors to ignore,
    cache expiry cutoffs and the persistent cache backend. Profiles are
    resolved once from configuration and then passed explicitly into every
    operation.

    The first six fields are required; the rest default to "don't ignore
    errors", "never expire" and "no persistent cache".
    """

    model_config = ConfigDict(frozen=True)

    handler_strategy: HandlerStrategy
    allow_ocr: bool
    ocr_languages: str
    content_strategy: ContentStrategy
    content_composition: ContentComposition
    metadata_strategy: MetadataStrategy

    ignore_content_service_errors: bool = False
    ignore_content_parser_errors: bool = False
    ignore_metadata_service_errors: bool = False
    ignore_metadata_parser_errors: bool = False

    expire_success_before: Optional[datetime] = Field(
        default=None, description="Cached successes at or before this time are stale"
    )
    expire_failure_before: Optional[datetime] = Field(
        default=None, description="Cached failures at or before this time are stale"
    )
    cache_backend: Optional[str] = Field(
        default=None, description="Persistent cache backend name; None disables the tier"
    )

    @field_validator("expire_success_before", "expire_failure_before")
    @classmethod
    def validate_cutoff(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive cutoffs as UTC so they compare with cache timestamps."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("cache_backend", mode="before")
    @classmethod
    def validate_cache_backend(cls, v: Any) -> Optional[str]:
        # Configuration may say `false` to disable the persistent tier.
        if v is False or v == "":
            return None
        return v

    @classmethod
    def from_config(cls, label: str, config_map: dict[str, Any]) -> Optional["TypeProfile"]:
        """
        Resolve a profile starting at label.

        Intent:
        Walks the label chain: a string value is an alias for another label,
        a dict value is a configuration block. Each block fills in whatever
        fields are still unresolved, then resolution continues with the
        block's "inherit" label. Nearer blocks win over inherited ones.

        Args:
            label: Starting label (usually a mime-type)
            config_map: Mapping of labels to blocks or aliases

        Returns:
            A complete TypeProfile, or None if a required field could not
            be resolved (a warning names the missing keys)
        """
        visited: set[str] = set()
        resolved: dict[str, Any] = {}
        fields = list(cls.model_fields)
        next_label: Optional[str] = label

        while next_label is not None:
            block = _resolve_string_label(next_label, config_map, visited)
            if block is None:
                break

            for name in fields:
                if name not in resolved and block.get(name) is not None:
                    resolved[name] = block[name]

            if all(name in resolved for name in fields):
                break

            next_label = block.get(INHERIT_KEY)

        missing = [
            name for name, info in cls.model_fields.items()
            if info.is_required() and name not in resolved
        ]
        if missing:
            logger.warning(
                "Unable to create a complete profile for label '%s'; unresolved values for: %s",
                label, ", ".join(missing),
            )
            return None

        return cls(**resolved)


def _resolve_string_label(
    label: Optional[Union[str, Any]],
    config_map: dict[str, Any],
    visited: set[str],
) -> Optional[dict[str, Any]]:
    """
    Dereference aliases until reaching a configuration block.

    Returns None (after logging a warning) on alias loops and dangling
    references. visited is shared across the whole inheritance chain, so
    an "inherit" loop is caught too.
    """
    while isinstance(label, str):
        if label in visited:
            logger.warning(
                "Referential loop detected in mime-type profiles involving labels: %s",
                ", ".join(sorted(visited)),
            )
            return None
        visited.add(label)

        value = config_map.get(label)
        if value is None:
            logger.warning("Dangling reference '%s' in mime-type profiles", label)
        label = value

    return label if isinstance(label, dict) else None


def profile_for_mime_type(mime_type: str, config: AnalyzerConfig) -> Optional[TypeProfile]:
    """
    Get the profile for a mime-type.

    Uses the mime-type's own label if configured, otherwise the "*" fallback
    label. Returns None if neither resolves, meaning the type should not be
    analyzed.
    """
    profiles = config.mime_type_profiles
    if mime_type in profiles:
        return TypeProfile.from_config(mime_type, profiles)
    if FALLBACK_LABEL in profiles:
        return TypeProfile.from_config(FALLBACK_LABEL, profiles)
    return None
