"""
Merging analyzer results with results produced by another handler.

A profile's content/metadata strategy decides whose answer wins when the
analyzer's output sits next to output from a wrapped handler ("other").
Analyzer metadata handed back to the host travels inside the other handler's
metadata under a reserved tag, so that it survives the host's storage round
trip without being rendered as if it were the other handler's own.
"""
from typing import Any, Mapping, Optional, Union

from .enums import ContentStrategy, MetadataStrategy
from .exceptions import unreachable

STASH_TAG = "opaque_tatf_tika_metadata"

FORMATTED_GROUPS = ("visible", "collapsed")

FormattedMetadata = dict[str, list[dict[str, Any]]]


class StashedMetadata:
    """
    Opaque wrapper for analyzer metadata carried in another handler's metadata.

    Renders as a shrug so that a host which formats every value it finds
    does not display the analyzer's properties twice.
    """

    def __init__(self, metadata: dict[str, Any]):
        self.metadata = metadata

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StashedMetadata):
            return NotImplemented
        return self.metadata == other.metadata

    def __repr__(self) -> str:
        return f"StashedMetadata({self.metadata!r})"

    def __str__(self) -> str:
        return "¯\\_(ツ)_/¯"


def stash_metadata(target: dict[str, Any], metadata: dict[str, Any]) -> None:
    """Stash analyzer metadata in target (modified in place)."""
    target[STASH_TAG] = StashedMetadata(metadata)


def unstash_metadata(source: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """
    Recover analyzer metadata stashed in source.

    Accepts the wrapper as well as the plain {"metadata": ...} dict it turns
    into after a JSON round trip.

    Returns:
        The stashed metadata, or None if there is none
    """
    stash = source.get(STASH_TAG)
    if isinstance(stash, StashedMetadata):
        return stash.metadata
    if isinstance(stash, dict):
        return stash.get("metadata")
    return None


def merge_content(
    strategy: Union[ContentStrategy, str], other: Optional[str], analyzed: str
) -> Optional[str]:
    """
    Merge text content from another handler with analyzer text.

    Args:
        strategy: Content strategy of the profile
        other: Other handler's text, None if it produced none
        analyzed: Analyzer text (possibly empty)
    """
    strategy = ContentStrategy(strategy)
    if strategy is ContentStrategy.NO_TIKA:
        return other
    if strategy is ContentStrategy.PREFER_OTHER:
        return other if other is not None else analyzed
    if strategy is ContentStrategy.COMBINE:
        if not other:
            return analyzed
        if analyzed == "":
            return other
        return f"{other}\n{analyzed}"
    if strategy is ContentStrategy.PREFER_TIKA:
        return analyzed if analyzed != "" else other
    if strategy is ContentStrategy.ONLY_TIKA:
        return analyzed
    unreachable(f"unknown content strategy {strategy}")


def merge_formatted_metadata(
    strategy: Union[MetadataStrategy, str],
    analyzed: Optional[FormattedMetadata],
    other: Optional[FormattedMetadata],
) -> Optional[FormattedMetadata]:
    """
    Merge two display-formatted metadata groupings.

    Groupings map "visible"/"collapsed" to lists of {"name", "value"} rows.
    Combining keeps the other handler's rows first within each group.
    """
    strategy = MetadataStrategy(strategy)
    if strategy is MetadataStrategy.NO_TIKA:
        return other
    if strategy is MetadataStrategy.PREFER_OTHER:
        return other if other is not None else analyzed
    if strategy is MetadataStrategy.COMBINE:
        if analyzed is None and other is None:
            return None
        return {
            group: list((other or {}).get(group, [])) + list((analyzed or {}).get(group, []))
            for group in FORMATTED_GROUPS
        }
    if strategy is MetadataStrategy.PREFER_TIKA:
        return analyzed if analyzed is not None else other
    if strategy is MetadataStrategy.ONLY_TIKA:
        return analyzed
    unreachable(f"unknown metadata strategy {strategy}")


def _flatten(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


def format_metadata_for_text(
    strategy: Union[MetadataStrategy, str],
    metadata: Optional[Mapping[str, Any]],
    other_formatted: Optional[FormattedMetadata],
) -> str:
    """
    Render metadata as "name: value" lines to append to extracted text.

    Lets full-text search find what the user sees in the displayed metadata.
    Multi-valued properties are flattened with spaces. Analyzer property
    names are emitted as returned by the analyzer; no display-name mapping
    is applied.

    Args:
        strategy: Metadata strategy of the profile
        metadata: Analyzer metadata
        other_formatted: Other handler's display-formatted metadata

    Returns:
        Concatenated lines, empty if there is nothing to show
    """
    strategy = MetadataStrategy(strategy)

    other_entries: list[str] = []
    if other_formatted is not None and strategy is not MetadataStrategy.ONLY_TIKA:
        for group in other_formatted.values():
            for row in group:
                if row["name"] == STASH_TAG:
                    continue
                other_entries.append(f"{row['name']}: {row['value']}\n")

    analyzed_entries: list[str] = []
    if metadata is not None and strategy is not MetadataStrategy.NO_TIKA:
        for name, value in metadata.items():
            analyzed_entries.append(f"{name}: {_flatten(value)}\n")

    if strategy is MetadataStrategy.NO_TIKA:
        entries = other_entries
    elif strategy is MetadataStrategy.PREFER_OTHER:
        entries = other_entries or analyzed_entries
    elif strategy is MetadataStrategy.COMBINE:
        entries = analyzed_entries + other_entries
    elif strategy is MetadataStrategy.PREFER_TIKA:
        entries = analyzed_entries or other_entries
    else:
        entries = analyzed_entries
    return "".join(entries)
