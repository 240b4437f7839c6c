"""
Aggregate Cache
===============
Caches serialized movies and rating aggregates in front of the database.

The cache is never the source of truth:
- Reads check the cache first and fall back to the database on a miss
- Writes delete the affected key after the database commit (invalidate,
  never update in place)
- Every backend failure degrades to a miss / no-op

Backends:
- RedisCache: shared cache for multi-worker deployments
- MemoryCache: in-process TTL + LRU store (single worker, local development)
- NullCache: caching disabled

Key scheme:
    entity:{title}      serialized movie
    aggregate:{title}   serialized rating aggregate

Usage:
    from catalog.utils.cache import build_cache, movie_key

    cache = build_cache(redis_client)
    cache.set(movie_key("Alpha"), payload, ttl=900)
    cache.get(movie_key("Alpha"))
    cache.delete(movie_key("Alpha"))
"""
import logging
import os
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional

import redis

logger = logging.getLogger(__name__)

DEFAULT_TTL = int(os.getenv("CACHE_TTL_SECONDS", "900"))  # 15 minutes


def movie_key(title: str) -> str:
    return f"entity:{title}"


def aggregate_key(title: str) -> str:
    return f"aggregate:{title}"


class CacheBackend:
    """Interface shared by all cache backends. Values are serialized strings."""

    name = "base"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: int = DEFAULT_TTL) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class NullCache(CacheBackend):
    """Cache that never stores anything. Used when no backend is configured."""

    name = "none"

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str, ttl: int = DEFAULT_TTL) -> None:
        return None

    def delete(self, key: str) -> None:
        return None


class MemoryCache(CacheBackend):
    """
    Simple in-memory cache with TTL and LRU eviction.
    For production with multiple workers, use Redis instead.
    """

    name = "memory"

    def __init__(self, max_size: int = 1000):
        """
        Initialize cache store.

        Args:
            max_size: Maximum number of items in cache (LRU eviction)
        """
        self._cache: OrderedDict = OrderedDict()
        self._max_size = max_size
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[str]:
        """
        Get value from cache if exists and not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        with self._lock:
            if key not in self._cache:
                self._misses += 1
                return None

            value, expiry = self._cache[key]

            # Check if expired
            if expiry and datetime.now() > expiry:
                del self._cache[key]
                self._misses += 1
                return None

            # Move to end (LRU)
            self._cache.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: str, ttl: int = DEFAULT_TTL) -> None:
        """
        Set value in cache with optional TTL.

        Args:
            key: Cache key
            value: Serialized value
            ttl: Time to live in seconds (0 = no expiration)
        """
        expiry = datetime.now() + timedelta(seconds=ttl) if ttl else None

        with self._lock:
            self._cache[key] = (value, expiry)
            self._cache.move_to_end(key)

            # Evict oldest if over max_size (LRU)
            if len(self._cache) > self._max_size:
                oldest_key, _ = self._cache.popitem(last=False)
                logger.debug(f"Evicted cache key: {oldest_key}")

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def get_stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

            return {
                'size': len(self._cache),
                'max_size': self._max_size,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': f"{hit_rate:.2f}%"
            }


class RedisCache(CacheBackend):
    """
    Redis-backed cache. Every Redis error is logged and treated as a miss
    (reads) or skipped (writes/deletes), so an outage only costs latency.
    """

    name = "redis"

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read error for {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl: int = DEFAULT_TTL) -> None:
        try:
            self.client.setex(key, ttl, value)
        except redis.RedisError as e:
            logger.warning(f"Cache write error for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Cache invalidation error for {key}: {e}")


def build_cache(client: Optional[redis.Redis]) -> CacheBackend:
    """
    Pick the cache backend once at startup.

    A reachable Redis client wins; otherwise CACHE_BACKEND=memory selects the
    in-process cache, and anything else disables caching.
    """
    if client is not None:
        return RedisCache(client)
    if os.getenv("CACHE_BACKEND", "").lower() == "memory":
        return MemoryCache(max_size=int(os.getenv("CACHE_MAX_SIZE", "1000")))
    return NullCache()
