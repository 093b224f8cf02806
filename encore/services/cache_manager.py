"""
Cache Management System

In-memory TTL caches for recommendation lists and Spotify metadata. Nothing
is persisted; every cache lives as long as the engine.
"""

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A cached value with its storage and expiry times."""
    key: str
    value: Any
    stored_at: float
    expires_at: float


class TTLCache:
    """
    Bounded cache with per-entry expiry.

    Expired entries are never returned. When an insert pushes the cache over
    ``max_entries`` the oldest stored entry is evicted.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_entries: Optional[int] = None,
        clock: Clock = time.monotonic
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            logger.debug("Cache miss", cache_type=self.name, key=key[:16] + "...")
            return default

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache entry expired", cache_type=self.name, key=key[:16] + "...")
            return default

        self.hits += 1
        logger.debug("Cache hit", cache_type=self.name, key=key[:16] + "...")
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            stored_at=now,
            expires_at=now + (ttl if ttl is not None else self.ttl_seconds),
        )

        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Cache eviction", cache_type=self.name, key=evicted_key[:16] + "...")

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry.expires_at

    def get_stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }


class CacheManager:
    """
    Registry of typed in-memory caches.

    Handles caching for:
    - Recommendation lists (30 minutes, at most 100 entries)
    - Spotify track metadata (1 hour)
    - Spotify collections (30 minutes)
    """

    def __init__(
        self,
        recommendation_ttl: float = 30 * 60,
        recommendation_max_entries: int = 100,
        catalog_ttl: float = 3600,
        clock: Clock = time.monotonic
    ):
        """
        Initialize cache manager.

        Args:
            recommendation_ttl: Recommendation list TTL in seconds
            recommendation_max_entries: Recommendation cache size bound
            catalog_ttl: Spotify track TTL in seconds; collections use half of it
            clock: Monotonic time source
        """
        self.caches: Dict[str, TTLCache] = {
            "recommendations": TTLCache(
                "recommendations", recommendation_ttl, recommendation_max_entries, clock
            ),
            "spotify_tracks": TTLCache("spotify_tracks", catalog_ttl, 1000, clock),
            "spotify_collections": TTLCache("spotify_collections", catalog_ttl / 2, 100, clock),
        }

        logger.info("Cache manager initialized", cache_types=list(self.caches.keys()))

    @staticmethod
    def generate_key(*args, **kwargs) -> str:
        """Generate a stable cache key from arguments."""
        key_data = {
            "args": args,
            "kwargs": sorted(kwargs.items())
        }
        key_str = json.dumps(key_data, sort_keys=True, default=str)
        return hashlib.md5(key_str.encode()).hexdigest()

    def cache(self, cache_type: str) -> TTLCache:
        if cache_type not in self.caches:
            raise KeyError(f"Unknown cache type: {cache_type}")
        return self.caches[cache_type]

    def get(self, cache_type: str, key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        Args:
            cache_type: Type of cache
            key: Cache key
            default: Default value if not found

        Returns:
            Cached value or default
        """
        return self.cache(cache_type).get(key, default)

    def set(self, cache_type: str, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, using the cache type's default TTL unless ``ttl`` is given."""
        self.cache(cache_type).set(key, value, ttl)

    def clear(self, cache_type: Optional[str] = None) -> None:
        """Clear one cache type, or all of them."""
        targets = [self.cache(cache_type)] if cache_type else list(self.caches.values())
        for cache in targets:
            cache.clear()
        logger.info("Cache cleared", cache_type=cache_type or "all")

    def cleanup_expired(self) -> int:
        removed = sum(cache.cleanup() for cache in self.caches.values())
        if removed:
            logger.debug("Expired cache entries removed", removed=removed)
        return removed

    def get_cache_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: cache.get_stats() for name, cache in self.caches.items()}
