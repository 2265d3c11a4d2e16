"""
Data models for the analyzer cache component
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import (
    AnalyzerParserError,
    CachedParserError,
    InvariantViolation,
    insist,
)

# Property of an analyzer response that carries the extracted text
TEXT_PROPERTY = "X-TIKA:content"

# Version of the serialized (persistent) format; must match exactly on read
SCHEMA_VERSION = 1

_BASE_KEYS = frozenset(
    {"sha1", "successTimestamp", "metadata", "metadataFailure", "contents", "contentsFailure"}
)
_CONTENTS_KEYS = frozenset({"schema", "sha1", "contents"})
_FAILURE_KEYS = frozenset({"timestamp", "onlyMetadata", "previousMessage"})


def utc_now() -> datetime:
    """Current UTC time, truncated to the millisecond precision that is persisted."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def _parse_timestamp(value: Any) -> datetime:
    insist(isinstance(value, str), f"timestamp {value!r} is a string")
    try:
        return _as_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise InvariantViolation(f"Bad parse of date-time string {value!r}") from e


def _extract_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        value = "\n".join(str(v) for v in value)
    return str(value).strip()


class CachedFailure(BaseModel):
    """
    A parser failure as recorded in the cache.

    Intent:
    Remembers that the analyzer, as of a point in time, could not process
    some content, so that the cache can avoid re-querying until the failure
    expires. Only the message survives serialization; that is enough to
    replay the failure as a CachedParserError.
    """

    model_config = ConfigDict(frozen=True)

    message: str = Field(description="Message of the original parser failure")
    timestamp: datetime = Field(description="UTC time the failure was recorded")
    metadata_only: bool = Field(description="Whether the failing request was metadata-only")

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @classmethod
    def from_error(
        cls, error: AnalyzerParserError, timestamp: datetime, metadata_only: bool
    ) -> "CachedFailure":
        return cls(message=str(error), timestamp=timestamp, metadata_only=metadata_only)

    def to_error(self) -> CachedParserError:
        """Build the exception to raise when this failure is replayed."""
        return CachedParserError(self.message, self.timestamp, self.metadata_only)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _format_timestamp(self.timestamp),
            "onlyMetadata": self.metadata_only,
            "previousMessage": self.message,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CachedFailure":
        insist(isinstance(data, dict), "failure details are an object")
        missing = _FAILURE_KEYS - data.keys()
        insist(not missing, f"failure details have no missing keys: {sorted(missing)}")
        message = data["previousMessage"]
        return cls(
            message="" if message is None else str(message),
            timestamp=_parse_timestamp(data["timestamp"]),
            metadata_only=bool(data["onlyMetadata"]),
        )


MetadataFacet = Optional[Union[dict[str, Any], CachedFailure]]
TextFacet = Optional[Union[list[str], CachedFailure]]


class CacheEntry(BaseModel):
    """
    Everything currently known about the analyzer's output for one content key.

    Intent:
    The cache keys on the content hash rather than the file path, so the
    same bytes stored under different names share one entry. Each of the
    two facets (metadata and extracted text) is independently unknown
    (None), a success value, or a CachedFailure.

    Invariants (checked on every construction):
    - text success implies metadata success (the analyzer always returns
      metadata alongside text)
    - success_timestamp is set if and only if metadata is a success

        | metadata | text    |
        |----------|---------|
        | unknown  | unknown | nothing known
        | unknown  | failure | text query failed, metadata-only untried
        | failure  | unknown | metadata-only query failed
        | failure  | failure | both kinds of query failed
        | success  | unknown | metadata-only query succeeded
        | success  | failure | metadata ok, text query failed
        | success  | success | everything ok
        | any else | success | FORBIDDEN

    Instances are immutable. Every operation returns a new entry, or the
    very same instance when nothing changed, so callers can detect change
    with an identity check.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Content hash identifying the entry")
    success_timestamp: Optional[datetime] = Field(
        default=None, description="UTC time of the most recent successful resolution"
    )
    metadata: MetadataFacet = Field(default=None, description="Metadata facet")
    text: TextFacet = Field(default=None, description="Extracted text facet")

    @field_validator("success_timestamp")
    @classmethod
    def validate_success_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_invariants(self) -> "CacheEntry":
        if self.is_text_success():
            insist(self.is_metadata_success(), "if text is good, metadata must also be good")
        insist(
            self.is_metadata_success() == (self.success_timestamp is not None),
            "metadata is good if and only if success timestamp is set",
        )
        return self

    @classmethod
    def new_empty(cls, key: str) -> "CacheEntry":
        """Create an entry with both facets unknown."""
        return cls(key=key)

    # Facet predicates

    def is_metadata_unknown(self) -> bool:
        return self.metadata is None

    def is_metadata_success(self) -> bool:
        return isinstance(self.metadata, dict)

    def is_metadata_failure(self) -> bool:
        return isinstance(self.metadata, CachedFailure)

    def is_text_unknown(self) -> bool:
        return self.text is None

    def is_text_success(self) -> bool:
        return isinstance(self.text, list)

    def is_text_failure(self) -> bool:
        return isinstance(self.text, CachedFailure)

    def is_sufficient(self, metadata_only: bool) -> bool:
        """
        Decide whether the entry can answer a request without more lookups.

        Resolved means success or failure; a cached failure is an answer.
        """
        if self.is_metadata_unknown():
            return False
        if metadata_only:
            return True
        return not self.is_text_unknown()

    # Accessors

    def get_metadata_or_raise(self) -> dict[str, Any]:
        """
        Return the metadata, or raise the cached failure.

        Raises:
            CachedParserError: If the metadata facet is a cached failure
            InvariantViolation: If the metadata facet is unknown
        """
        insist(self.metadata is not None, "metadata is resolved before it is read")
        if isinstance(self.metadata, CachedFailure):
            raise self.metadata.to_error()
        return dict(self.metadata)

    def get_text_or_raise(self) -> list[str]:
        """
        Return the extracted text, or raise the cached failure.

        Raises:
            CachedParserError: If the text facet is a cached failure
            InvariantViolation: If the text facet is unknown
        """
        insist(self.text is not None, "text is resolved before it is read")
        if isinstance(self.text, CachedFailure):
            raise self.text.to_error()
        return list(self.text)

    # Update algebra

    def _derive(
        self,
        success_timestamp: Optional[datetime],
        metadata: MetadataFacet,
        text: TextFacet,
    ) -> "CacheEntry":
        return CacheEntry(
            key=self.key,
            success_timestamp=success_timestamp,
            metadata=metadata,
            text=text,
        )

    def update_from_success(
        self, timestamp: datetime, metadata_only: bool, response: dict[str, Any]
    ) -> "CacheEntry":
        """
        Fold a successful analyzer response into the entry.

        Intent:
        The text property is split out of the response (trimmed, wrapped in
        a one-element list) and everything else becomes the metadata. A
        metadata-only response never touches the text facet, so an earlier
        text failure or unknown survives.

        Args:
            timestamp: Time of the query
            metadata_only: Whether the request was metadata-only
            response: Raw property map returned by the analyzer

        Returns:
            A new CacheEntry
        """
        metadata = dict(response)
        text = [_extract_text(metadata.pop(TEXT_PROPERTY, None))]
        return self._derive(timestamp, metadata, self.text if metadata_only else text)

    def update_from_failure(
        self, timestamp: datetime, metadata_only: bool, error: AnalyzerParserError
    ) -> "CacheEntry":
        """
        Fold a parser failure into the entry.

        A metadata-only failure lands on the metadata facet; a text+metadata
        failure lands on the text facet only, leaving metadata as it was.
        (metadata unknown, text unknown) thus becomes (unknown, failure),
        which says "don't retry text, but a metadata-only query may work".

        A failure never replaces a success already held by the target facet;
        the entry is returned unchanged in that case.

        System failures say nothing about the content and are rejected.
        """
        insist(isinstance(error, AnalyzerParserError), "only parser failures are cached")
        cached = CachedFailure.from_error(error, timestamp, metadata_only)
        if metadata_only:
            if self.is_metadata_success():
                return self
            return self._derive(self.success_timestamp, cached, self.text)
        if self.is_text_success():
            return self
        return self._derive(self.success_timestamp, self.metadata, cached)

    def expire(
        self,
        success_cutoff: Optional[datetime] = None,
        failure_cutoff: Optional[datetime] = None,
    ) -> "CacheEntry":
        """
        Demote results recorded at or before the given cutoffs to unknown.

        Args:
            success_cutoff: Successes with timestamp <= cutoff are dropped
            failure_cutoff: Failures with timestamp <= cutoff are dropped

        Returns:
            A new CacheEntry if anything expired, otherwise self
        """
        success_cutoff = _as_utc(success_cutoff)
        failure_cutoff = _as_utc(failure_cutoff)
        success_timestamp = self.success_timestamp
        metadata = self.metadata
        text = self.text
        changed = False

        if (
            success_cutoff is not None
            and self.success_timestamp is not None
            and self.success_timestamp <= success_cutoff
        ):
            success_timestamp = None
            changed = True
            if self.is_metadata_success():
                metadata = None
            if self.is_text_success():
                text = None

        if failure_cutoff is not None:
            if isinstance(self.metadata, CachedFailure) and self.metadata.timestamp <= failure_cutoff:
                metadata = None
                changed = True
            if isinstance(self.text, CachedFailure) and self.text.timestamp <= failure_cutoff:
                text = None
                changed = True

        if not changed:
            return self
        return self._derive(success_timestamp, metadata, text)

    def resolve_from_other(self, other: "CacheEntry") -> "CacheEntry":
        """
        Fill unknown facets from another entry for the same key.

        Intent:
        Lets a lookup pull progressively more out of deeper cache tiers
        (nothing -> metadata-only -> metadata+text). A facet that is already
        resolved here is never replaced, whatever the other entry says, so
        shallower tiers keep authority once populated.

        A text success is only taken when the resulting metadata is also a
        success; otherwise the text stays unknown and will be queried. The
        taken text keeps this entry's success_timestamp even when the other
        entry's differs, since both answers describe the same content.

        Returns:
            self if other adds nothing, otherwise a new CacheEntry
        """
        insist(other.key == self.key, f"entries share a key ({self.key} vs {other.key})")

        success_timestamp = self.success_timestamp
        metadata = self.metadata
        text = self.text
        changed = False

        if self.metadata is None and other.metadata is not None:
            metadata = other.metadata
            success_timestamp = other.success_timestamp
            changed = True

        if self.text is None and other.text is not None:
            # Text success cannot sit beside unsuccessful metadata.
            if isinstance(metadata, dict) or not other.is_text_success():
                text = other.text
                changed = True

        if not changed:
            return self
        return self._derive(success_timestamp, metadata, text)

    # Serialization
    #
    # Base document:
    #   {
    #     "schema": 1,
    #     "sha1": "...",
    #     "successTimestamp": string | null,
    #     "metadata": object | false | null,     false: failure, null: unknown
    #     "metadataFailure": object | null,
    #     "contents": true | false | null,       true: in the contents document
    #     "contentsFailure": object | null
    #   }
    #
    # Contents document:
    #   { "schema": 1, "sha1": "...", "contents": [string, ...] }

    def serialize(self) -> tuple[dict[str, Any], Union[dict[str, Any], bool, None]]:
        """
        Serialize to a (base, contents) pair of JSON-compatible values.

        The contents element is the contents document when text is a
        success, False when text is a failure, and None when text is unknown.
        Bulk text never appears in the base document, so metadata-only reads
        can skip it.
        """
        base: dict[str, Any] = {
            "schema": SCHEMA_VERSION,
            "sha1": self.key,
            "successTimestamp": (
                _format_timestamp(self.success_timestamp)
                if self.success_timestamp is not None
                else None
            ),
        }

        if isinstance(self.metadata, dict):
            base["metadata"] = dict(self.metadata)
            base["metadataFailure"] = None
        elif isinstance(self.metadata, CachedFailure):
            base["metadata"] = False
            base["metadataFailure"] = self.metadata.to_dict()
        else:
            base["metadata"] = None
            base["metadataFailure"] = None

        contents: Union[dict[str, Any], bool, None] = None
        if isinstance(self.text, list):
            base["contents"] = True
            base["contentsFailure"] = None
            contents = {"schema": SCHEMA_VERSION, "sha1": self.key, "contents": list(self.text)}
        elif isinstance(self.text, CachedFailure):
            base["contents"] = False
            base["contentsFailure"] = self.text.to_dict()
            contents = False
        else:
            base["contents"] = None
            base["contentsFailure"] = None

        return base, contents

    @classmethod
    def unserialize(
        cls, base: dict[str, Any], contents: Optional[dict[str, Any]] = None
    ) -> "CacheEntry":
        """
        Rebuild an entry from its base document and optional contents document.

        A base document that points at a contents document which was not
        supplied yields an unknown text facet (a metadata-only read).

        Raises:
            InvariantViolation: On schema mismatch, missing keys, key mismatch
                between the documents, or values that break entry invariants
        """
        insist(isinstance(base, dict), "base document is an object")
        schema = base.get("schema")
        insist(
            type(schema) is int and schema == SCHEMA_VERSION,
            f"schema {schema!r} matches {SCHEMA_VERSION}",
        )
        missing = _BASE_KEYS - base.keys()
        insist(not missing, f"base document has no missing keys: {sorted(missing)}")

        if contents is not None:
            insist(isinstance(contents, dict), "contents document is an object")
            missing = _CONTENTS_KEYS - contents.keys()
            insist(not missing, f"contents document has no missing keys: {sorted(missing)}")
            insist(contents["schema"] == schema, "contents schema matches base schema")
            insist(contents["sha1"] == base["sha1"], "contents key matches base key")
            insist(isinstance(contents["contents"], list), "contents is a list")

        success_timestamp = None
        if base["successTimestamp"] is not None:
            success_timestamp = _parse_timestamp(base["successTimestamp"])

        raw_metadata = base["metadata"]
        metadata: MetadataFacet = None
        if isinstance(raw_metadata, dict):
            insist(base["metadataFailure"] is None, "good metadata has no failure details")
            metadata = raw_metadata
        elif raw_metadata is False:
            metadata = CachedFailure.from_dict(base["metadataFailure"])
        else:
            insist(raw_metadata is None, f"metadata value {raw_metadata!r} is recognized")

        raw_contents = base["contents"]
        text: TextFacet = None
        if raw_contents is True:
            insist(base["contentsFailure"] is None, "good contents has no failure details")
            if contents is not None:
                text = [str(s) for s in contents["contents"]]
        elif isinstance(raw_contents, list):
            insist(base["contentsFailure"] is None, "good contents has no failure details")
            text = [str(s) for s in raw_contents]
        elif raw_contents is False:
            text = CachedFailure.from_dict(base["contentsFailure"])
        else:
            insist(raw_contents is None, f"contents value {raw_contents!r} is recognized")

        return cls(
            key=base["sha1"],
            success_timestamp=success_timestamp,
            metadata=metadata,
            text=text,
        )
