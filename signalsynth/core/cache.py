"""
Caching utilities for SignalSynth.

Provides TTL-based caches for market data to reduce paid API calls.
Each data kind gets its own cache, tuned to how quickly that data goes stale.
"""

import threading
import time
from dataclasses import dataclass, fields
from typing import Any, Callable, Optional

from cachetools import LRUCache

from signalsynth.core.logging import get_logger

logger = get_logger("cache")

_MISSING = object()


@dataclass(frozen=True)
class CacheTtlConfig:
    """TTL (seconds) per market data kind."""

    quotes: float = 5
    intraday: float = 120
    daily: float = 24 * 3600
    profile: float = 24 * 3600
    metrics: float = 24 * 3600
    sentiment: float = 15 * 60

    @classmethod
    def from_config(cls, config: Optional[dict[str, Any]]) -> "CacheTtlConfig":
        """Build from the `cache_ttl` section of config.yaml, ignoring unknown keys."""
        if not config:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in config.items() if k in known})


class TimedCache:
    """
    TTL-based cache with an injectable clock.

    Features:
    - An entry stays valid until its age is strictly greater than the TTL
    - Bounded size with LRU eviction
    - Atomic get/set under a lock (safe to share across concurrent runs)
    - Hit/miss statistics
    """

    def __init__(
        self,
        ttl: float,
        *,
        maxsize: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        self.ttl = ttl
        self.name = name
        self.clock = clock
        # key -> (stored_at, value)
        self._cache: LRUCache = LRUCache(maxsize=maxsize)
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0}

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at > self.ttl

    def get(self, key: str, default: Any = None) -> Any:
        """Get value from cache, or `default` when absent or expired."""
        with self._lock:
            entry = self._cache.get(key, _MISSING)
            if entry is not _MISSING and self._expired(entry[0], self.clock()):
                del self._cache[key]
                entry = _MISSING
            if entry is _MISSING:
                self._stats["misses"] += 1
                logger.debug(f"Cache miss [{self.name}]: {key}")
                return default
            self._stats["hits"] += 1
        logger.debug(f"Cache hit [{self.name}]: {key}")
        return entry[1]

    def set(self, key: str, value: Any) -> None:
        """Set value in cache."""
        with self._lock:
            self._cache[key] = (self.clock(), value)

    def delete(self, key: str) -> None:
        """Delete key from cache."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cached values."""
        with self._lock:
            self._cache.clear()
        logger.debug(f"Cache cleared [{self.name}]")

    def _purge(self) -> None:
        now = self.clock()
        for key in [k for k, (stored_at, _) in self._cache.items() if self._expired(stored_at, now)]:
            del self._cache[key]

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._cache)

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            self._purge()
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = self._stats["hits"] / total if total > 0 else 0
            return {
                **self._stats,
                "total": total,
                "hit_rate": round(hit_rate, 3),
                "size": len(self._cache),
            }
