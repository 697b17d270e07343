"""
Query result caching.

Memoizes complete pipeline results so a repeated question with the same
namespace and chat history skips retrieval, synthesis and validation.

Keys are ``namespace:normalized query:md5(chat history)[:8]`` with
``no-history`` when the history is empty. Entries expire after a TTL that
is refreshed on every hit; the least recently used entry is evicted when
the cache is full.
"""

import copy
import dataclasses
import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Optional

from hybridrag.core.config import CacheConfig
from hybridrag.core.logging import get_logger

logger = get_logger(__name__)

NO_HISTORY = "no-history"


def normalize_query(query: str) -> str:
    return " ".join((query or "").lower().split())


def history_hash(chat_history: str = "") -> str:
    if not chat_history:
        return NO_HISTORY
    return hashlib.md5(chat_history.encode("utf-8")).hexdigest()[:8]


def make_cache_key(query: str, namespace: str, chat_history: str = "") -> str:
    """Generate cache key from query, namespace and history."""
    return f"{namespace}:{normalize_query(query)}:{history_hash(chat_history)}"


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""

    key: str
    value: Any
    created_at: float
    hits: int = 0
    last_accessed: float = field(default_factory=time.time)

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        """Expired when unused for longer than the TTL."""
        return (now - self.last_accessed) > ttl_seconds

    def touch(self, now: float) -> None:
        """Update access time and hit count."""
        self.last_accessed = now
        self.hits += 1


class QueryCache:
    """
    LRU cache for pipeline results.

    Features:
    - Thread-safe operations
    - TTL-based expiration, refreshed on access
    - LRU eviction when full
    - Cache statistics

    Dataclass results are stored and returned as deep copies, so callers
    never share mutable fields with a cached entry. Those with
    ``cached``/``cache_timestamp`` fields are returned with ``cached=True``.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    def get_cached_query(
        self, query: str, namespace: str, chat_history: str = ""
    ) -> Optional[Any]:
        """
        Get a cached result.

        Returns:
            The cached result marked as cached, or None if missing/expired.
        """
        if not self.config.enabled:
            return None

        key = make_cache_key(query, namespace, chat_history)
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            if entry.is_expired(self.config.ttl_seconds, now):
                del self._cache[key]
                self._stats["misses"] += 1
                return None

            entry.touch(now)
            self._cache.move_to_end(key)
            self._stats["hits"] += 1
            value = entry.value

        logger.debug("Cache hit", key=key)
        return _mark(value, cached=True)

    def set_cached_query(
        self, query: str, namespace: str, result: Any, chat_history: str = ""
    ) -> str:
        """Cache a result; returns its key."""
        key = make_cache_key(query, namespace, chat_history)
        if not self.config.enabled:
            return key

        now = self._clock()
        value = _mark(result, cached=False, timestamp=now)
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= max(1, self.config.max_size):
                self._evict_lru()
            self._cache[key] = CacheEntry(key=key, value=value, created_at=now, last_accessed=now)
            self._stats["sets"] += 1
        return key

    def _evict_lru(self) -> None:
        """Evict least recently used entry."""
        if not self._cache:
            return
        self._cache.popitem(last=False)
        self._stats["evictions"] += 1

    def invalidate(self, query: Optional[str] = None, namespace: str = "", chat_history: str = "") -> None:
        """
        Invalidate cache entries.

        Args:
            query: Specific query to invalidate, or None for all.
        """
        with self._lock:
            if query is None:
                self._cache.clear()
                return
            self._cache.pop(make_cache_key(query, namespace, chat_history), None)

    def clear(self) -> None:
        """Drop all entries and reset statistics."""
        with self._lock:
            self._cache.clear()
            self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            return {
                **self._stats,
                "hit_rate": round(self._stats["hits"] / total, 4) if total else 0.0,
                "size": len(self._cache),
                "max_size": self.config.max_size,
            }


def _mark(value: Any, cached: bool, timestamp: Optional[float] = None) -> Any:
    if not dataclasses.is_dataclass(value) or isinstance(value, type):
        return value
    names = {f.name for f in dataclasses.fields(value)}
    changes: Dict[str, Any] = {}
    if "cached" in names:
        changes["cached"] = cached
    if timestamp is not None and "cache_timestamp" in names:
        changes["cache_timestamp"] = timestamp
    return dataclasses.replace(copy.deepcopy(value), **changes)
