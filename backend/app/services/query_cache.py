"""
Query Cache - Cache table reads keyed by query signature

In-memory cache with per-entry TTL and LRU eviction. Writes through
data_access clear every key for the touched table.
"""

import json
import time
from dataclasses import dataclass
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.config import settings
from app.core.logging_config import logger


@dataclass
class CachedResult:
    """Cached query result"""
    value: Any
    created_at: float
    ttl: float


def make_key(table: str, select: str = "*", match: Optional[Dict[str, Any]] = None,
             single: bool = False) -> str:
    """
    Build the cache key for a query.

    Format: "{table}:{select}:{json(match)}:{single}". Match keys are sorted so
    the same filter always produces the same key.
    """
    match_json = json.dumps(match, sort_keys=True, default=str)
    return f"{table}:{select}:{match_json}:{str(single).lower()}"


class QueryCache:
    """
    TTL + LRU cache for query results.

    Features:
    - Entry is a hit while its age is strictly below its TTL
    - Expired entries are dropped when read
    - Least recently used entry evicted when full
    """

    def __init__(
        self,
        ttl: float = settings.QUERY_CACHE_TTL_SECONDS,
        max_entries: int = settings.QUERY_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._cache: "OrderedDict[str, CachedResult]" = OrderedDict()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired"""
        cached = self._cache.get(key)
        if cached is None:
            self._stats["misses"] += 1
            return None

        if self._clock() - cached.created_at >= cached.ttl:
            del self._cache[key]
            self._stats["misses"] += 1
            logger.log_cache_event("expired", key)
            return None

        self._cache.move_to_end(key)
        self._stats["hits"] += 1
        return cached.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if key in self._cache:
            del self._cache[key]

        while len(self._cache) >= self.max_entries:
            evicted, _ = self._cache.popitem(last=False)
            self._stats["evictions"] += 1
            logger.log_cache_event("evicted", evicted)

        self._cache[key] = CachedResult(
            value=value,
            created_at=self._clock(),
            ttl=self.ttl if ttl is None else ttl,
        )

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value or await fetcher and cache its result.

        Falsy results are cached too; a raising fetcher caches nothing.
        """
        if key in self._cache:
            cached = self.get(key)
            if key in self._cache:
                return cached
        else:
            self._stats["misses"] += 1

        logger.log_cache_event("miss", key)
        value = await fetcher()
        self.set(key, value, ttl)
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when key is None"""
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)

    def clear(self, prefix: Optional[str] = None) -> int:
        """Drop keys starting with prefix (all keys when prefix is None)"""
        if prefix is None:
            removed = len(self._cache)
            self._cache.clear()
        else:
            doomed = [k for k in self._cache if k.startswith(prefix)]
            for k in doomed:
                del self._cache[k]
            removed = len(doomed)

        if removed:
            logger.log_cache_event("cleared", prefix or "*", removed=removed)
        return removed

    def reset_stats(self) -> None:
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total if total > 0 else 0

        return {
            "size": len(self._cache),
            "max_entries": self.max_entries,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "hit_rate": round(hit_rate * 100, 2),
            "evictions": self._stats["evictions"],
        }


# Singleton instance
query_cache = QueryCache()
