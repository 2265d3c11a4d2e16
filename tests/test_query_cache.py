"""
Tests for the main QueryCache class
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from analyzer_cache import QueryCache
from analyzer_cache.exceptions import (
    AnalyzerParserError,
    AnalyzerSystemError,
    CacheConfigurationError,
    CachedParserError,
)
from analyzer_cache.file_storage import FileSystemBlobStore, PersistentCache
from analyzer_cache.models import TEXT_PROPERTY, CacheEntry
from analyzer_cache.profiles import TypeProfile

FULL_RESPONSE = {TEXT_PROPERTY: "  Extracted text  ", "title": "doc", "pages": ["1", "2"]}


class FakeAnalyzer:
    """
    In-test analyzer client with scripted responses per query kind
    """

    def __init__(self, text=FULL_RESPONSE, meta=None):
        self.text = text
        self.meta = meta if meta is not None else {
            k: v for k, v in FULL_RESPONSE.items() if k != TEXT_PROPERTY
        }
        self.calls: list[tuple[Path, bool]] = []

    async def query(self, profile: TypeProfile, file_path: Path, metadata_only: bool) -> dict[str, Any]:
        self.calls.append((file_path, metadata_only))
        outcome = self.meta if metadata_only else self.text
        if isinstance(outcome, Exception):
            raise outcome
        return dict(outcome)


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def cache(config, analyzer, temp_dir):
    """
    Create a QueryCache with one persistent backend
    """
    config.cache_backends = {"main": temp_dir / "cache"}
    return QueryCache(config, analyzer)


def persistent_profile(make_profile, **overrides) -> TypeProfile:
    return make_profile(cache_backend="main", **overrides)


class TestResolve:
    """
    Test cases for basic resolve behaviour
    """

    @pytest.mark.asyncio
    async def test_miss_then_local_hit(self, cache, analyzer, make_profile, sample_file):
        """
        Test first resolve queries the analyzer and the second is a local hit
        """
        profile = make_profile()

        metadata, text = await cache.resolve(profile, sample_file, False)
        assert metadata == {"title": "doc", "pages": ["1", "2"]}
        assert text == ["Extracted text"]
        assert analyzer.calls == [(sample_file, False)]

        again = await cache.resolve(profile, sample_file, False)
        assert again == (metadata, text)
        assert len(analyzer.calls) == 1

        stats = cache.get_statistics()
        assert stats["total_requests"] == 2
        assert stats["cache_hits"] == 1
        assert stats["local_hits"] == 1
        assert stats["analyzer_queries"] == 1
        assert stats["local_entries"] == 1

    @pytest.mark.asyncio
    async def test_metadata_only(self, cache, analyzer, make_profile, sample_file):
        """
        Test metadata-only resolves return a placeholder text
        """
        metadata, text = await cache.resolve(make_profile(), sample_file, True)
        assert metadata == {"title": "doc", "pages": ["1", "2"]}
        assert text == [""]
        assert analyzer.calls == [(sample_file, True)]

    @pytest.mark.asyncio
    async def test_metadata_then_text(self, cache, analyzer, make_profile, sample_file):
        """
        Test a text request after a metadata-only one queries text once
        """
        profile = make_profile()
        await cache.resolve(profile, sample_file, True)
        _, text = await cache.resolve(profile, sample_file, False)

        assert text == ["Extracted text"]
        assert analyzer.calls == [(sample_file, True), (sample_file, False)]

    @pytest.mark.asyncio
    async def test_text_answers_later_metadata_request(
        self, cache, analyzer, make_profile, sample_file
    ):
        """
        Test a text query also answers later metadata-only requests
        """
        profile = make_profile()
        await cache.resolve(profile, sample_file, False)
        await cache.resolve(profile, sample_file, True)
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_same_content_shares_entry(self, cache, analyzer, make_profile, temp_dir):
        """
        Test two paths with identical bytes share one entry
        """
        first = temp_dir / "one.pdf"
        second = temp_dir / "two.pdf"
        first.write_bytes(b"same bytes")
        second.write_bytes(b"same bytes")

        profile = make_profile()
        await cache.resolve(profile, first, False)
        await cache.resolve(profile, second, False)
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_external_key(self, cache, analyzer, make_profile, sample_file):
        """
        Test a caller-supplied key is used as the entry key
        """
        entry = await cache.resolve_entry(make_profile(), sample_file, True, key="cafe0001")
        assert entry.key == "cafe0001"
        assert cache.hasher.known_key(sample_file) == "cafe0001"


class TestFailures:
    """
    Test cases for failure classification and caching
    """

    @pytest.mark.asyncio
    async def test_system_error_not_cached(self, cache, analyzer, make_profile, sample_file):
        """
        Test system errors propagate and leave every tier untouched
        """
        analyzer.text = AnalyzerSystemError("down")
        profile = persistent_profile(make_profile)

        with pytest.raises(AnalyzerSystemError):
            await cache.resolve(profile, sample_file, False)

        key = cache.hasher.known_key(sample_file)
        assert await cache.local_cache.get(key) is None
        persistent = cache._persistent_for(profile)
        assert await persistent.fetch(key, False) is None

        analyzer.text = FULL_RESPONSE
        _, text = await cache.resolve(profile, sample_file, False)
        assert text == ["Extracted text"]
        assert cache.get_statistics()["errors"] == {"AnalyzerSystemError": 1}

    @pytest.mark.asyncio
    async def test_text_failure_requeries_metadata(
        self, cache, analyzer, make_profile, sample_file
    ):
        """
        Test a text failure triggers one metadata-only requery
        """
        analyzer.text = AnalyzerParserError("too slow")
        profile = make_profile()

        with pytest.raises(AnalyzerParserError):
            await cache.resolve(profile, sample_file, False)
        assert analyzer.calls == [(sample_file, False), (sample_file, True)]

        entry = await cache.resolve_entry(profile, sample_file, False)
        assert entry.is_metadata_success()
        assert entry.is_text_failure()
        assert entry.metadata.get("title") == "doc"
        assert cache.get_statistics()["requeries"] == 1

    @pytest.mark.asyncio
    async def test_cached_failure_replayed(self, cache, analyzer, make_profile, sample_file):
        """
        Test a cached text failure is raised without querying again
        """
        analyzer.text = AnalyzerParserError("too slow")
        profile = make_profile()

        with pytest.raises(AnalyzerParserError):
            await cache.resolve(profile, sample_file, False)

        with pytest.raises(CachedParserError) as exc_info:
            await cache.resolve(profile, sample_file, False)
        assert exc_info.value.message == "too slow"
        assert len(analyzer.calls) == 2

        # Metadata is still available
        metadata, _ = await cache.resolve(profile, sample_file, True)
        assert metadata["title"] == "doc"
        assert len(analyzer.calls) == 2

    @pytest.mark.asyncio
    async def test_both_queries_fail(self, cache, analyzer, make_profile, sample_file):
        """
        Test failures on both query kinds are cached on both facets
        """
        analyzer.text = AnalyzerParserError("text")
        analyzer.meta = AnalyzerParserError("meta")
        profile = make_profile()

        with pytest.raises(AnalyzerParserError):
            await cache.resolve(profile, sample_file, True)

        entry = await cache.resolve_entry(profile, sample_file, False)
        assert entry.is_metadata_failure()
        assert entry.is_text_failure()
        # metadata-only failure, then text query (metadata still failed, no requery)
        assert analyzer.calls == [(sample_file, True), (sample_file, False)]


class TestExpiry:
    """
    Test cases for profile expiry cutoffs
    """

    @pytest.mark.asyncio
    async def test_expired_success_requeried(self, cache, analyzer, make_profile, sample_file):
        """
        Test a success older than the cutoff is queried again
        """
        await cache.resolve(make_profile(), sample_file, False)

        later = make_profile(expire_success_before=datetime.now(timezone.utc) + timedelta(days=1))
        await cache.resolve(later, sample_file, False)

        assert len(analyzer.calls) == 2
        assert cache.get_statistics()["expirations"] == 1

    @pytest.mark.asyncio
    async def test_old_cutoff_keeps_entry(self, cache, analyzer, make_profile, sample_file):
        """
        Test a cutoff before the success keeps the cached result
        """
        await cache.resolve(make_profile(), sample_file, False)

        earlier = make_profile(expire_success_before=datetime(2000, 1, 1, tzinfo=timezone.utc))
        await cache.resolve(earlier, sample_file, False)
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_expired_failure_requeried(self, cache, analyzer, make_profile, sample_file):
        """
        Test an expired failure lets the analyzer try again
        """
        analyzer.text = AnalyzerParserError("boom")
        with pytest.raises(AnalyzerParserError):
            await cache.resolve(make_profile(), sample_file, False)

        analyzer.text = FULL_RESPONSE
        later = make_profile(expire_failure_before=datetime.now(timezone.utc) + timedelta(days=1))
        _, text = await cache.resolve(later, sample_file, False)
        assert text == ["Extracted text"]

    @pytest.mark.asyncio
    async def test_stale_persistent_entry_ignored(
        self, cache, analyzer, make_profile, sample_file
    ):
        """
        Test an expired persistent entry does not satisfy a request
        """
        profile = persistent_profile(make_profile)
        await cache.resolve(profile, sample_file, False)
        await cache.local_cache.clear()

        later = persistent_profile(
            make_profile, expire_success_before=datetime.now(timezone.utc) + timedelta(days=1)
        )
        await cache.resolve(later, sample_file, False)
        assert len(analyzer.calls) == 2


class TestPersistentTier:
    """
    Test cases for the persistent tier
    """

    @pytest.mark.asyncio
    async def test_write_through(self, cache, make_profile, sample_file, temp_dir):
        """
        Test resolved entries are written to the persistent tier
        """
        profile = persistent_profile(make_profile)
        await cache.resolve(profile, sample_file, False)

        key = cache.hasher.known_key(sample_file)
        _, base_name, contents_name = PersistentCache.cache_paths(key)
        assert (temp_dir / "cache" / base_name).exists()
        assert (temp_dir / "cache" / contents_name).exists()

    @pytest.mark.asyncio
    async def test_upgrade_from_persistent(self, config, make_profile, sample_file, temp_dir):
        """
        Test a fresh process is answered from the persistent tier
        """
        config.cache_backends = {"main": temp_dir / "cache"}
        profile = persistent_profile(make_profile)

        first_analyzer = FakeAnalyzer()
        await QueryCache(config, first_analyzer).resolve(profile, sample_file, False)

        second_analyzer = FakeAnalyzer()
        second = QueryCache(config, second_analyzer)
        metadata, text = await second.resolve(profile, sample_file, False)

        assert second_analyzer.calls == []
        assert text == ["Extracted text"]
        assert metadata["title"] == "doc"
        stats = second.get_statistics()
        assert stats["persistent_upgrades"] == 1
        assert stats["cache_hits"] == 1
        assert stats["local_hits"] == 0

    @pytest.mark.asyncio
    async def test_metadata_only_upgrade_then_text(
        self, config, make_profile, sample_file, temp_dir
    ):
        """
        Test a persistent metadata-only entry is upgraded with a text query
        """
        config.cache_backends = {"main": temp_dir / "cache"}
        profile = persistent_profile(make_profile)

        await QueryCache(config, FakeAnalyzer()).resolve(profile, sample_file, True)

        analyzer = FakeAnalyzer()
        second = QueryCache(config, analyzer)
        _, text = await second.resolve(profile, sample_file, False)

        assert text == ["Extracted text"]
        assert analyzer.calls == [(sample_file, False)]

        stored = await second._persistent_for(profile).fetch(
            second.hasher.known_key(sample_file), False
        )
        assert stored.text == ["Extracted text"]

    @pytest.mark.asyncio
    async def test_local_tier_keeps_authority(self, cache, analyzer, make_profile, sample_file):
        """
        Test a resolved local facet wins over a disagreeing persistent one
        """
        profile = persistent_profile(make_profile)
        await cache.resolve(profile, sample_file, True)

        key = cache.hasher.known_key(sample_file)
        persistent = cache._persistent_for(profile)
        other = CacheEntry.new_empty(key).update_from_success(
            datetime.now(timezone.utc), False, {TEXT_PROPERTY: "other text", "title": "other"}
        )
        await persistent.store(other)

        metadata, text = await cache.resolve(profile, sample_file, False)
        assert metadata["title"] == "doc"
        assert text == ["other text"]
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_injected_blob_store(self, config, analyzer, make_profile, sample_file, temp_dir):
        """
        Test an injected blob store takes precedence over configuration
        """
        store = FileSystemBlobStore(temp_dir / "injected")
        cache = QueryCache(config, analyzer, blob_stores={"shared": store})
        await cache.resolve(make_profile(cache_backend="shared"), sample_file, False)

        assert any((temp_dir / "injected").rglob("*.base.json"))

    @pytest.mark.asyncio
    async def test_unknown_backend(self, cache, make_profile, sample_file):
        """
        Test a profile naming an unconfigured backend fails
        """
        with pytest.raises(CacheConfigurationError):
            await cache.resolve(make_profile(cache_backend="nowhere"), sample_file, False)

    @pytest.mark.asyncio
    async def test_disabled_local_tier(self, config, analyzer, make_profile, sample_file, temp_dir):
        """
        Test the persistent tier still answers with the local tier disabled
        """
        config.local_cache_size = 0
        config.cache_backends = {"main": temp_dir / "cache"}
        cache = QueryCache(config, analyzer)
        profile = persistent_profile(make_profile)

        await cache.resolve(profile, sample_file, False)
        await cache.resolve(profile, sample_file, False)

        assert len(analyzer.calls) == 1
        assert len(cache.local_cache) == 0
