"""
Extraction service: the entry point used by the host's file handlers.
"""
import logging
from pathlib import Path
from typing import Any, Optional

from .enums import ContentComposition, ContentStrategy, MetadataStrategy
from .exceptions import AnalyzerParserError, AnalyzerSystemError
from .merge import FormattedMetadata, format_metadata_for_text, merge_content, stash_metadata
from .profiles import TypeProfile
from .query_cache import QueryCache

logger = logging.getLogger(__name__)


class ExtractionService:
    """
    Produces searchable text and storable metadata for files.

    Intent:
    Applies a profile's strategies around QueryCache: decides whether the
    analyzer is needed at all, merges its answer with another handler's,
    and applies the per-facet policies for ignoring analyzer failures.

    Example:
        >>> service = ExtractionService(QueryCache(config, client))
        >>> text = await service.generate_text_content(profile, Path("doc.pdf"))
    """

    def __init__(self, cache: QueryCache):
        self.cache = cache

    async def _resolve(
        self,
        profile: TypeProfile,
        file_path: Path,
        metadata_only: bool,
        ignore_service_errors: bool,
        ignore_parser_errors: bool,
    ) -> tuple[dict[str, Any], list[str]]:
        try:
            return await self.cache.resolve(profile, file_path, metadata_only)
        except AnalyzerSystemError as e:
            if not ignore_service_errors:
                raise
            logger.warning("Ignoring analyzer service error for %s: %s", file_path, e)
        except AnalyzerParserError as e:
            if not ignore_parser_errors:
                raise
            logger.warning("Ignoring analyzer parser error for %s: %s", file_path, e)
        return {}, [""]

    async def generate_text_content(
        self,
        profile: TypeProfile,
        file_path: Path,
        other_content: Optional[str] = None,
        other_formatted_metadata: Optional[FormattedMetadata] = None,
    ) -> Optional[str]:
        """
        Generate text content for search indexing.

        Args:
            profile: Profile for the file's mime-type
            file_path: Local path of the file
            other_content: Text produced by another handler, if any
            other_formatted_metadata: Display-formatted metadata produced by
                another handler, if any

        Returns:
            Merged text, or None if no handler produced any

        Raises:
            AnalyzerSystemError: Unless ignore_content_service_errors is set
            AnalyzerParserError: Unless ignore_content_parser_errors is set
        """
        strategy = profile.content_strategy
        if strategy is ContentStrategy.NO_TIKA or (
            strategy is ContentStrategy.PREFER_OTHER and other_content is not None
        ):
            return other_content

        composition = profile.content_composition
        metadata, text = await self._resolve(
            profile,
            file_path,
            composition is ContentComposition.METADATA,
            profile.ignore_content_service_errors,
            profile.ignore_content_parser_errors,
        )

        analyzed = "\n".join(text).strip()
        if composition is not ContentComposition.TEXT:
            formatted = format_metadata_for_text(
                profile.metadata_strategy, metadata, other_formatted_metadata
            )
            logger.debug("Add metadata to content for %s:\n%s", file_path, formatted)
            if formatted:
                analyzed = f"{analyzed} {formatted}"

        return merge_content(strategy, other_content, analyzed)

    async def generate_metadata(
        self,
        profile: TypeProfile,
        file_path: Path,
        other_metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Generate metadata to store with the file.

        Analyzer metadata is stashed inside a copy of the other handler's
        metadata (see merge.stash_metadata), leaving that handler's own
        entries untouched.

        Returns:
            Metadata dict, or None if no handler produced any

        Raises:
            AnalyzerSystemError: Unless ignore_metadata_service_errors is set
            AnalyzerParserError: Unless ignore_metadata_parser_errors is set
        """
        strategy = profile.metadata_strategy
        if strategy is MetadataStrategy.NO_TIKA or (
            strategy is MetadataStrategy.PREFER_OTHER and other_metadata is not None
        ):
            return other_metadata

        metadata, _ = await self._resolve(
            profile,
            file_path,
            True,
            profile.ignore_metadata_service_errors,
            profile.ignore_metadata_parser_errors,
        )

        result = dict(other_metadata or {})
        stash_metadata(result, metadata)
        return result
