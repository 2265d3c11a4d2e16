"""
Metrics and monitoring for the query cache
"""
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class QueryMetrics:
    """
    Counters describing how queries were answered.

    Intent:
    Shows whether the cache is doing its job: how often requests are
    answered without the analyzer, which tier answered them, how often the
    analyzer is hit (including metadata-only requeries), and which failures
    come back.
    """
    # Request counters
    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    # Where answers came from
    local_hits: int = 0
    object_cache_upgrades: int = 0
    persistent_upgrades: int = 0
    expirations: int = 0

    # Analyzer traffic
    analyzer_queries: int = 0
    requeries: int = 0

    # Performance metrics
    total_response_time: float = 0.0
    max_response_time: Optional[float] = None

    # Error tracking by exception type name
    errors: dict[str, int] = field(default_factory=dict)

    started_at: datetime = field(default_factory=datetime.now)
    last_reset_at: datetime = field(default_factory=datetime.now)

    @property
    def hit_rate(self) -> float:
        """
        Fraction of requests answered without querying the analyzer.

        Returns:
            Hit rate as a decimal (0.0 to 1.0), 0.0 if no requests yet
        """
        if self.total_requests == 0:
            return 0.0
        return self.cache_hits / self.total_requests

    @property
    def avg_response_time(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time / self.total_requests

    def record_request(self, response_time: float, cache_hit: bool) -> None:
        self.total_requests += 1
        self.total_response_time += response_time

        if cache_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

        if self.max_response_time is None or response_time > self.max_response_time:
            self.max_response_time = response_time

    def record_error(self, error_type: str) -> None:
        self.errors[error_type] = self.errors.get(error_type, 0) + 1

    def to_dict(self) -> dict:
        """
        Convert metrics to a dictionary for export.

        Returns:
            Dictionary containing all metrics, times in milliseconds
        """
        return {
            "total_requests": self.total_requests,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "hit_rate": self.hit_rate,
            "local_hits": self.local_hits,
            "object_cache_upgrades": self.object_cache_upgrades,
            "persistent_upgrades": self.persistent_upgrades,
            "expirations": self.expirations,
            "analyzer_queries": self.analyzer_queries,
            "requeries": self.requeries,
            "avg_response_time_ms": self.avg_response_time * 1000,
            "max_response_time_ms": (
                self.max_response_time * 1000 if self.max_response_time is not None else None
            ),
            "errors": dict(self.errors),
            "uptime_seconds": (datetime.now() - self.started_at).total_seconds(),
        }

    def to_prometheus(self) -> str:
        """
        Export metrics in Prometheus exposition format.

        Returns:
            String in Prometheus exposition format
        """
        counters = [
            ("analyzer_cache_requests_total", "Total number of resolve requests", self.total_requests),
            ("analyzer_cache_hits_total", "Requests answered from cache", self.cache_hits),
            ("analyzer_cache_local_hits_total", "Requests answered by the local tier", self.local_hits),
            (
                "analyzer_cache_persistent_upgrades_total",
                "Entries upgraded from the persistent tier",
                self.persistent_upgrades,
            ),
            ("analyzer_queries_total", "Queries sent to the analyzer", self.analyzer_queries),
            ("analyzer_requeries_total", "Metadata-only requeries", self.requeries),
        ]

        lines: list[str] = []
        for name, help_text, value in counters:
            lines.extend([
                f"# HELP {name} {help_text}",
                f"# TYPE {name} counter",
                f"{name} {value}",
                "",
            ])

        lines.extend([
            "# HELP analyzer_cache_hit_rate Cache hit rate",
            "# TYPE analyzer_cache_hit_rate gauge",
            f"analyzer_cache_hit_rate {self.hit_rate}",
            "",
            "# HELP analyzer_cache_response_time_seconds Response time in seconds",
            "# TYPE analyzer_cache_response_time_seconds summary",
            f"analyzer_cache_response_time_seconds_sum {self.total_response_time}",
            f"analyzer_cache_response_time_seconds_count {self.total_requests}",
        ])

        for error_type, count in self.errors.items():
            lines.extend([
                "",
                f"# HELP analyzer_cache_errors_total Total errors of type {error_type}",
                "# TYPE analyzer_cache_errors_total counter",
                f'analyzer_cache_errors_total{{type="{error_type}"}} {count}',
            ])

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all counters, keeping started_at."""
        self.total_requests = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.local_hits = 0
        self.object_cache_upgrades = 0
        self.persistent_upgrades = 0
        self.expirations = 0
        self.analyzer_queries = 0
        self.requeries = 0
        self.total_response_time = 0.0
        self.max_response_time = None
        self.errors.clear()
        self.last_reset_at = datetime.now()


class MetricsCollector:
    """
    Context manager for collecting request metrics.

    Times the enclosed block and records the type name of any exception
    that escapes it. The request counts as a miss unless mark_cache_hit()
    is called.
    """
    def __init__(self, metrics: QueryMetrics):
        self.metrics = metrics
        self.start_time: Optional[float] = None
        self.cache_hit: bool = False

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            response_time = time.monotonic() - self.start_time
            self.metrics.record_request(response_time, self.cache_hit)

        if exc_type is not None:
            self.metrics.record_error(exc_type.__name__)

        return False  # Don't suppress exceptions

    def mark_cache_hit(self) -> None:
        self.cache_hit = True
