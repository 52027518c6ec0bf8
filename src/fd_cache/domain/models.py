"""Domain models for fd_cache — cache entries and process-wide metrics."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from src.fd_common.datetime_utils import utc_now


@dataclass
class CacheEntry:
    data: Any
    timestamp: float        # clock seconds at insertion
    ttl: float              # seconds
    hits: int = 0
    last_accessed: float = 0.0

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_stale(self, now: float) -> bool:
        return self.age(now) > self.ttl

    def is_expired(self, now: float) -> bool:
        """Past 2×TTL: eligible for the periodic sweep."""
        return self.age(now) > self.ttl * 2

    def touch(self, now: float) -> None:
        self.hits += 1
        self.last_accessed = now


@dataclass
class CacheMetrics:
    total_requests: int = 0
    hit_count: int = 0
    miss_count: int = 0
    average_response_time: float = 0.0   # ms
    cache_size: int = 0
    last_updated: datetime = field(default_factory=utc_now)

    @property
    def hit_rate(self) -> float:
        return self.hit_count / self.total_requests if self.total_requests else 0.0

    @property
    def miss_rate(self) -> float:
        return self.miss_count / self.total_requests if self.total_requests else 0.0

    def record(self, hit: bool, elapsed_ms: float) -> None:
        self.total_requests += 1
        if hit:
            self.hit_count += 1
        else:
            self.miss_count += 1
        # Incremental mean: avg' = avg + (x - avg) / n
        self.average_response_time += (
            elapsed_ms - self.average_response_time
        ) / self.total_requests
        self.last_updated = utc_now()

    def snapshot(self, cache_size: int) -> "CacheMetrics":
        return replace(self, cache_size=cache_size, last_updated=utc_now())

    def as_dict(self) -> dict[str, Any]:
        return {
            "hit_rate": self.hit_rate,
            "miss_rate": self.miss_rate,
            "total_requests": self.total_requests,
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "average_response_time_ms": self.average_response_time,
            "cache_size": self.cache_size,
            "last_updated": self.last_updated.isoformat(),
        }
