# -*- coding: utf-8 -*-
"""
GreenLedger Cache Backends

Key/value cache used for resolved emission factors, batch report progress,
audit summaries and external search results.

FEATURES:
- ``CacheBackend`` interface (get / set / delete / clear)
- ``InMemoryCache``: LRU eviction with per-entry TTL, thread-safe (RLock)
- ``RedisCache``: redis-py client with JSON values and a circuit breaker;
  Redis failures degrade to cache misses and never surface to callers
- Hit/miss statistics

Values must be JSON-serializable. Writes are atomic per key (single
dictionary assignment under the lock, or a single Redis ``SET``).

CACHE KEY FORMAT:
    ef:{activity_type}:{unit}                    resolved activity factor
    ef:{project_id}:{activity_type}:{unit}       project-scoped factor
    grid_ef:{region}:{year}                      resolved grid factor
    batch:{batch_id}                             batch report progress
    audit:summary:{project}                      unbounded audit summary
    serpapi:ef:{terms}                           external search results

Author: GreenLang Platform Team
Date: March 2026
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, Optional

import redis

from greenledger import metrics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class CacheBackend(ABC):
    """Minimal cache contract shared by every GreenLedger component."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None when absent or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    def clear(self) -> None:
        """Remove every entry (optional for shared backends)."""

    def get_stats(self) -> Dict[str, Any]:
        return {}


# ---------------------------------------------------------------------------
# In-process LRU + TTL cache
# ---------------------------------------------------------------------------


class CacheEntry:
    """A single cache entry with TTL tracking."""

    def __init__(self, value: Any, ttl_seconds: Optional[int], now: float):
        self.value = value
        self.created_at = now
        self.ttl_seconds = ttl_seconds
        self.access_count = 0

    def is_expired(self, now: float) -> bool:
        if self.ttl_seconds is None:
            return False
        return (now - self.created_at) >= self.ttl_seconds

    def access(self) -> Any:
        self.access_count += 1
        return self.value


class InMemoryCache(CacheBackend):
    """
    LRU cache with TTL for single-process deployments and tests.

    Features:
    - LRU eviction when max_size reached
    - TTL-based expiration checked on read
    - Thread-safe operations
    - Hit/miss statistics
    """

    def __init__(
        self,
        max_size: int = 10000,
        default_ttl_seconds: Optional[int] = 3600,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries (default: 10000)
            default_ttl_seconds: TTL applied when ``set`` gets none
            clock: Monotonic time source in seconds (default: time.monotonic)
        """
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock or time.monotonic

        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = RLock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                metrics.record_cache_miss(key)
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                metrics.record_cache_miss(key)
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            metrics.record_cache_hit(key)
            return entry.access()

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)
                self._evictions += 1

            self._cache[key] = CacheEntry(value, ttl, self._clock())
            self._cache.move_to_end(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with hits, misses, hit_rate, size, evictions and expirations
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0
            return {
                "backend": "memory",
                "hits": self._hits,
                "misses": self._misses,
                "total_requests": total_requests,
                "hit_rate_pct": round(hit_rate, 2),
                "size": len(self._cache),
                "max_size": self.max_size,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }


# ---------------------------------------------------------------------------
# Redis cache with circuit breaker
# ---------------------------------------------------------------------------


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"      # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for Redis operations.

    Prevents cascading failures by stopping requests to an unhealthy Redis.
    """
    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds
    half_open_max_calls: int = 3

    def __post_init__(self):
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.half_open_calls = 0

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            self.half_open_calls = 0
            logger.info("Redis circuit breaker closed (recovered)")
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                self.state = CircuitState.OPEN
                logger.warning(
                    "Redis circuit breaker opened after %d failures",
                    self.failure_count,
                )

    def can_attempt(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if time.monotonic() - self.last_failure_time >= self.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                self.half_open_calls = 0
                logger.info("Redis circuit breaker half-open (testing recovery)")
            else:
                return False

        if self.half_open_calls < self.half_open_max_calls:
            self.half_open_calls += 1
            return True
        return False


class RedisCache(CacheBackend):
    """
    Redis-backed cache shared across service instances.

    Values are stored as JSON text under ``{key_prefix}{key}``. Any Redis
    error is logged, counted by the circuit breaker and reported to the
    caller as a miss (reads) or a no-op (writes).
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        key_prefix: str = "greenledger:",
        default_ttl_seconds: Optional[int] = 3600,
        client: Optional[redis.Redis] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.key_prefix = key_prefix
        self.default_ttl_seconds = default_ttl_seconds
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )
        self._breaker = circuit_breaker or CircuitBreaker()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _fail(self, operation: str, key: str, exc: Exception) -> None:
        self._errors += 1
        self._breaker.record_failure()
        logger.warning("Redis %s failed for key %s: %s", operation, key, exc)

    def get(self, key: str) -> Optional[Any]:
        if not self._breaker.can_attempt():
            self._misses += 1
            metrics.record_cache_miss(key)
            return None
        try:
            raw = self._client.get(self._key(key))
        except redis.RedisError as exc:
            self._fail("get", key, exc)
            self._misses += 1
            metrics.record_cache_miss(key)
            return None
        self._breaker.record_success()

        if raw is None:
            self._misses += 1
            metrics.record_cache_miss(key)
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache value for key %s", key)
            self.delete(key)
            self._misses += 1
            metrics.record_cache_miss(key)
            return None
        self._hits += 1
        metrics.record_cache_hit(key)
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        if not self._breaker.can_attempt():
            return
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self._client.set(self._key(key), payload, ex=int(ttl))
            else:
                self._client.set(self._key(key), payload)
        except redis.RedisError as exc:
            self._fail("set", key, exc)
            return
        self._breaker.record_success()

    def delete(self, key: str) -> None:
        if not self._breaker.can_attempt():
            return
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as exc:
            self._fail("delete", key, exc)
            return
        self._breaker.record_success()

    def clear(self) -> None:
        """Delete every key under this cache's prefix."""
        if not self._breaker.can_attempt():
            return
        try:
            for name in self._client.scan_iter(match=f"{self.key_prefix}*"):
                self._client.delete(name)
        except redis.RedisError as exc:
            self._fail("clear", "*", exc)
            return
        self._breaker.record_success()

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0
        return {
            "backend": "redis",
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "total_requests": total_requests,
            "hit_rate_pct": round(hit_rate, 2),
            "circuit_state": self._breaker.state.value,
        }


__all__ = [
    "CacheBackend",
    "CacheEntry",
    "InMemoryCache",
    "CircuitState",
    "CircuitBreaker",
    "RedisCache",
]
