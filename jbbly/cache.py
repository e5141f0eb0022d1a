"""
In-memory TTL cache for jbbly.
Holds daily phrase selections and leaderboard snapshots.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .logging_utils import get_logger

logger = get_logger("jbbly.cache")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    created_at: float


class MemoryCache:
    """Thread-safe in-memory cache with TTL support"""

    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired"""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            if time.time() > entry.expires_at:
                del self._cache[key]
                self._stats["misses"] += 1
                self._stats["evictions"] += 1
                return None
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> None:
        with self._lock:
            now = time.time()
            self._cache[key] = CacheEntry(value=value, expires_at=now + ttl_seconds, created_at=now)
            self._stats["sets"] += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._cache if k.startswith(prefix)]
            for k in keys:
                del self._cache[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._stats["evictions"] += len(self._cache)
            self._cache.clear()

    def cleanup_expired(self) -> int:
        """Drop expired entries, return how many were removed"""
        with self._lock:
            now = time.time()
            expired = [k for k, e in self._cache.items() if now > e.expires_at]
            for k in expired:
                del self._cache[k]
            self._stats["evictions"] += len(expired)
            return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
            return {
                **self._stats,
                "total_requests": total,
                "hit_rate_percent": round(hit_rate, 2),
                "cache_size": len(self._cache),
            }


_cache = MemoryCache()


def get_cache() -> MemoryCache:
    return _cache


def cache_daily_selection(date: str, pool_fp: str, selection: tuple, ttl_hours: int = 24) -> None:
    _cache.set(f"daily_selection:{date}:{pool_fp}", selection, ttl_hours * 3600)


def get_cached_daily_selection(date: str, pool_fp: str) -> Optional[tuple]:
    return _cache.get(f"daily_selection:{date}:{pool_fp}")


def cache_leaderboard(date: str, limit: int, leaders: list, ttl_minutes: int = 5) -> None:
    """Leaderboards change often, so they get a short TTL"""
    _cache.set(f"leaderboard:{date}:{limit}", leaders, ttl_minutes * 60)


def get_cached_leaderboard(date: str, limit: int) -> Optional[list]:
    return _cache.get(f"leaderboard:{date}:{limit}")


def invalidate_leaderboard_cache(date: str) -> None:
    """Called on every insert for the date"""
    _cache.delete_prefix(f"leaderboard:{date}:")


def cleanup_cache_periodically() -> int:
    expired_count = _cache.cleanup_expired()
    if expired_count > 0:
        logger.info("cache_cleanup", extra={"count": expired_count})
    return expired_count
