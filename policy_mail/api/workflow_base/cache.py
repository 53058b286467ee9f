"""
Caching utilities for workflow system.
Provides a two-tier cache: a bounded in-memory tier in front of a durable
key/value tier, with per-entry TTL and load-through on slower-tier hits.
"""

import asyncio
import hashlib
import inspect
import json
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .backends import InMemoryKeyValueBackend, KeyValueBackend

logger = logging.getLogger(__name__)

MAX_DURABLE_ENTRY_BYTES = 8 * 1024
TAG_PREFIX = "tag:"


class CacheTier(str, Enum):
    """Cache tiers, fastest first."""

    MEMORY = "memory"
    DURABLE = "durable"


class CacheScope(str, Enum):
    """Ownership scope of durable entries."""

    SUBJECT = "subject"
    PROCESS = "process"


TIER_ORDER = [CacheTier.MEMORY, CacheTier.DURABLE]


class CacheEntry(BaseModel):
    """Stored value with its expiry."""

    key: str
    value: Any
    created_at: float
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryCacheTier:
    """
    Bounded in-memory tier.
    Evicts the least recently inserted entry when full (FIFO, not LRU).
    """

    def __init__(self, max_size: int = 100):
        self.cache: dict[str, CacheEntry] = {}
        self.max_size = max_size

    def get(self, key: str, now: float) -> CacheEntry | None:
        """Get entry if present and not expired."""
        entry = self.cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            # Expired, remove it
            del self.cache[key]
            return None
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        # Re-setting a key counts as a fresh insertion
        self.cache.pop(key, None)
        if len(self.cache) >= self.max_size:
            oldest_key = next(iter(self.cache))
            del self.cache[oldest_key]
            logger.debug(f"Evicted oldest memory entry: {oldest_key}")
        self.cache[key] = entry

    def delete(self, key: str) -> bool:
        return self.cache.pop(key, None) is not None

    def clear(self, prefix: str = "") -> None:
        for key in [k for k in self.cache if k.startswith(prefix)]:
            del self.cache[key]

    def purge_expired(self, now: float) -> int:
        expired = [k for k, entry in self.cache.items() if entry.is_expired(now)]
        for key in expired:
            del self.cache[key]
        return len(expired)


class TieredCache:
    """
    Memory tier backed by durable key/value tiers.

    Reads consult tiers fastest to slowest and populate faster tiers on a
    slower-tier hit. No read or maintenance call raises; failures degrade to
    a miss and are logged.
    """

    def __init__(
        self,
        memory_capacity: int = 100,
        subject_backend: KeyValueBackend | None = None,
        process_backend: KeyValueBackend | None = None,
        max_entry_bytes: int = MAX_DURABLE_ENTRY_BYTES,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            memory_capacity: Maximum number of in-memory entries
            subject_backend: Durable store for per-subject entries
            process_backend: Durable store for process-wide entries
            max_entry_bytes: Size ceiling for a serialized durable entry
            clock: Callable returning the current time in seconds
        """
        self.memory = MemoryCacheTier(memory_capacity)
        self.backends: dict[CacheScope, KeyValueBackend] = {
            CacheScope.SUBJECT: subject_backend or InMemoryKeyValueBackend(),
            CacheScope.PROCESS: process_backend or InMemoryKeyValueBackend(),
        }
        self.max_entry_bytes = max_entry_bytes
        self.clock = clock
        self.hits = 0
        self.misses = 0
        self._in_flight: dict[str, asyncio.Future] = {}

    @staticmethod
    def _memory_key(key: str, scope: CacheScope) -> str:
        return f"{scope.value}:{key}"

    @staticmethod
    def _ordered(tiers: list[CacheTier] | None) -> list[CacheTier]:
        if not tiers:
            return list(TIER_ORDER)
        return [tier for tier in TIER_ORDER if tier in tiers]

    def _read(self, tier: CacheTier, key: str, scope: CacheScope, now: float) -> CacheEntry | None:
        if tier == CacheTier.MEMORY:
            return self.memory.get(self._memory_key(key, scope), now)

        backend = self.backends[scope]
        raw = backend.get(key)
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable cache entry: {key}")
            backend.delete(key)
            return None
        if entry.is_expired(now):
            backend.delete(key)
            return None
        return entry

    def _write(self, tier: CacheTier, entry: CacheEntry, scope: CacheScope) -> bool:
        if tier == CacheTier.MEMORY:
            self.memory.set(self._memory_key(entry.key, scope), entry)
            return True

        payload = entry.model_dump_json()
        size = len(payload.encode("utf-8"))
        if size > self.max_entry_bytes:
            logger.warning(
                f"Skipping durable cache write for {entry.key}: "
                f"{size} bytes exceeds limit of {self.max_entry_bytes}"
            )
            return False
        self.backends[scope].set(entry.key, payload)
        return True

    def get(
        self,
        key: str,
        tiers: list[CacheTier] | None = None,
        scope: CacheScope = CacheScope.PROCESS,
        load_through: bool = True,
    ) -> Any | None:
        """
        Get value from the first tier holding an unexpired entry.

        Args:
            key: Cache key
            tiers: Tiers to consult (default: all, fastest first)
            scope: Durable scope to read from
            load_through: Populate faster tiers on a slower-tier hit

        Returns:
            Cached value or None
        """
        ordered = self._ordered(tiers)
        now = self.clock()
        try:
            for idx, tier in enumerate(ordered):
                entry = self._read(tier, key, scope, now)
                if entry is None:
                    continue
                if load_through:
                    for faster in ordered[:idx]:
                        self._write(faster, entry, scope)
                self.hits += 1
                logger.debug(f"Cache hit for key: {key} ({tier.value})")
                return entry.value
        except Exception as e:
            logger.warning(f"Cache read failed for key {key}: {e}")

        self.misses += 1
        logger.debug(f"Cache miss for key: {key}")
        return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tiers: list[CacheTier] | None = None,
        scope: CacheScope = CacheScope.PROCESS,
    ) -> bool:
        """
        Store value in the requested tiers.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds (None never expires)
            tiers: Tiers to write (default: all)
            scope: Durable scope to write to

        Returns:
            True when every requested tier accepted the value
        """
        now = self.clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        stored = True
        for tier in self._ordered(tiers):
            try:
                stored = self._write(tier, entry, scope) and stored
            except Exception as e:
                logger.warning(f"Cache write to {tier.value} failed for key {key}: {e}")
                stored = False
        if stored:
            logger.debug(f"Cached value for key: {key}")
        return stored

    def delete(self, key: str, scope: CacheScope = CacheScope.PROCESS) -> bool:
        """Delete key from all tiers."""
        removed = self.memory.delete(self._memory_key(key, scope))
        try:
            removed = self.backends[scope].delete(key) or removed
        except Exception as e:
            logger.warning(f"Cache delete failed for key {key}: {e}")
        return removed

    def clear(self, scope: CacheScope | None = None) -> None:
        """Clear all entries, optionally only for one scope."""
        scopes = [scope] if scope else list(CacheScope)
        for current in scopes:
            self.memory.clear(prefix=f"{current.value}:")
            try:
                self.backends[current].clear()
            except Exception as e:
                logger.warning(f"Cache clear failed for scope {current.value}: {e}")
        self.hits = 0
        self.misses = 0
        logger.info("Cache cleared")

    def set_with_tags(
        self,
        key: str,
        value: Any,
        tags: list[str],
        ttl: float | None = None,
        scope: CacheScope = CacheScope.PROCESS,
    ) -> bool:
        """Store value and index its key under each tag."""
        stored = self.set(key, value, ttl, scope=scope)
        now = self.clock()
        for tag in tags:
            tag_key = f"{TAG_PREFIX}{tag}"
            existing = self._peek(tag_key, scope, now)
            keys = list(existing.value) if existing is not None else []
            if key not in keys:
                keys.append(key)

            # Tag lists live twice as long as their longest-lived member
            expires_at = now + ttl * 2 if ttl is not None else None
            if existing is not None and expires_at is not None:
                if existing.expires_at is None:
                    expires_at = None
                else:
                    expires_at = max(expires_at, existing.expires_at)
            tag_ttl = expires_at - now if expires_at is not None else None
            self.set(tag_key, keys, tag_ttl, scope=scope)
        return stored

    def _peek(self, key: str, scope: CacheScope, now: float) -> CacheEntry | None:
        """Return the first live entry for key without touching stats or faster tiers."""
        for tier in TIER_ORDER:
            try:
                entry = self._read(tier, key, scope, now)
            except Exception as e:
                logger.warning(f"Cache read failed for key {key}: {e}")
                continue
            if entry is not None:
                return entry
        return None

    def invalidate_by_tag(self, tag: str, scope: CacheScope = CacheScope.PROCESS) -> int:
        """Delete every key indexed under tag. Returns the number of keys."""
        tag_key = f"{TAG_PREFIX}{tag}"
        keys = self.get(tag_key, scope=scope) or []
        for key in keys:
            self.delete(key, scope=scope)
        self.delete(tag_key, scope=scope)
        logger.info(f"Invalidated {len(keys)} entries for tag {tag}")
        return len(keys)

    def get_or_compute(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl: float | None = None,
        scope: CacheScope = CacheScope.PROCESS,
        tags: list[str] | None = None,
    ) -> Any:
        """
        Return the cached value or compute, store and return it.

        Factory errors propagate. A failing cache layer falls back to the
        factory. Computed values are indexed under tags when given.
        """
        try:
            cached = self.get(key, scope=scope)
        except Exception as e:
            logger.warning(f"Cache unavailable for {key}, computing directly: {e}")
            return factory()
        if cached is not None:
            return cached

        value = factory()
        if value is not None:
            try:
                if tags:
                    self.set_with_tags(key, value, tags, ttl, scope=scope)
                else:
                    self.set(key, value, ttl, scope=scope)
            except Exception as e:
                logger.warning(f"Could not cache computed value for {key}: {e}")
        return value

    async def aget_or_compute(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl: float | None = None,
        scope: CacheScope = CacheScope.PROCESS,
    ) -> Any:
        """
        Async cache-aside. Concurrent callers for the same key share one
        in-flight factory call.
        """
        cached = self.get(key, scope=scope)
        if cached is not None:
            return cached

        flight_key = self._memory_key(key, scope)
        pending = self._in_flight.get(flight_key)
        if pending is not None:
            return await pending

        future = asyncio.get_running_loop().create_future()
        self._in_flight[flight_key] = future
        try:
            value = factory()
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so a caller-less failure is not reported again
            future.exception()
            raise
        else:
            future.set_result(value)
        finally:
            self._in_flight.pop(flight_key, None)

        if value is not None:
            self.set(key, value, ttl, scope=scope)
        return value

    def cleanup(self) -> int:
        """Purge expired entries from every tier. Returns the number purged."""
        now = self.clock()
        purged = self.memory.purge_expired(now)
        for scope, backend in self.backends.items():
            try:
                for key in backend.keys():
                    if self._read(CacheTier.DURABLE, key, scope, now) is None:
                        purged += 1
            except Exception as e:
                logger.warning(f"Cache cleanup failed for scope {scope.value}: {e}")
        logger.info(f"Cache cleanup purged {purged} entries")
        return purged

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self.hits + self.misses
        hit_rate = (self.hits / total * 100) if total > 0 else 0

        return {
            "size": len(self.memory.cache),
            "max_size": self.memory.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{hit_rate:.2f}%",
        }


def cache_key(*args, **kwargs) -> str:
    """
    Generate a cache key from function arguments.

    Args:
        *args: Positional arguments
        **kwargs: Keyword arguments

    Returns:
        MD5 hash of arguments as cache key
    """
    key_data = {"args": args, "kwargs": sorted(kwargs.items())}
    key_str = json.dumps(key_data, sort_keys=True, default=str)

    return hashlib.md5(key_str.encode()).hexdigest()
