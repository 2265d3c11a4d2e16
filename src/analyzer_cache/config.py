"""
Configuration module for the analyzer cache component
"""
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()


class AnalyzerConfig(BaseModel):
    """
    Configuration for the analyzer client and query cache, with environment
    variable support.

    Intent:
    Centralizes the service endpoint, retry policy, local cache sizing,
    persistent cache backends, and the mime-type profile map. Environment
    variables take precedence over the built-in defaults so a deployment
    can point at a different analyzer without code changes.

    The object is passed explicitly into every component; nothing in the
    package reads configuration from globals after construction.
    """

    service_base_url: str = Field(
        default_factory=lambda: os.getenv("ANALYZER_BASE_URL", "http://localhost:9998")
    )
    query_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ANALYZER_QUERY_TIMEOUT_SECONDS", "60"))
    )
    query_retry_count: int = Field(
        default_factory=lambda: int(os.getenv("ANALYZER_QUERY_RETRY_COUNT", "2"))
    )
    query_retry_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ANALYZER_QUERY_RETRY_DELAY_SECONDS", "5"))
    )
    local_cache_size: int = Field(
        default_factory=lambda: int(os.getenv("ANALYZER_LOCAL_CACHE_SIZE", "100"))
    )

    # Persistent cache backends: backend name -> root directory
    cache_backends: dict[str, Path] = Field(default_factory=dict)

    # Label -> configuration block (dict) or alias (str); see profiles.py
    mime_type_profiles: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(validate_assignment=True, validate_default=True)

    @field_validator("service_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """
        Validate the analyzer base URL and normalize away a trailing slash.

        Endpoint paths ("/meta", "/tika/text") are appended directly, so a
        trailing slash would produce a double slash.
        """
        if not v.startswith(("http://", "https://")):
            raise ValueError("Service base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("query_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Query timeout must be positive")
        return v

    @field_validator("query_retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        """
        Validate retry count.

        A query makes at most 1 + query_retry_count attempts, so zero is a
        legitimate "no retries" setting.
        """
        if v < 0:
            raise ValueError("Retry count must not be negative")
        return v

    @field_validator("query_retry_delay_seconds")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry delay must not be negative")
        return v

    @field_validator("local_cache_size")
    @classmethod
    def validate_local_cache_size(cls, v: int) -> int:
        """Validate local cache size; zero disables the process-local tier."""
        if v < 0:
            raise ValueError("Local cache size must not be negative")
        return v
