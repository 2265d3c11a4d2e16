"""
Shared fixtures for analyzer cache tests
"""
import tempfile
from pathlib import Path

import pytest

from analyzer_cache.config import AnalyzerConfig
from analyzer_cache.profiles import TypeProfile

PROFILE_DEFAULTS = {
    "handler_strategy": "wrapping",
    "allow_ocr": True,
    "ocr_languages": "eng+fra",
    "content_strategy": "combine",
    "content_composition": "text",
    "metadata_strategy": "combine",
}


@pytest.fixture
def make_profile():
    """
    Factory for TypeProfile instances with test defaults
    """
    def factory(**overrides) -> TypeProfile:
        return TypeProfile(**{**PROFILE_DEFAULTS, **overrides})

    return factory


@pytest.fixture
def config():
    """
    Configuration with fast retries and no environment dependence
    """
    return AnalyzerConfig(
        service_base_url="http://analyzer.test:9998/",
        query_timeout_seconds=5,
        query_retry_count=2,
        query_retry_delay_seconds=0,
        local_cache_size=100,
    )


@pytest.fixture
def temp_dir():
    """
    Create a temporary directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_file(temp_dir):
    """
    Create a small document on disk
    """
    path = temp_dir / "document.pdf"
    path.write_bytes(b"%PDF-1.4 sample document bytes")
    return path
