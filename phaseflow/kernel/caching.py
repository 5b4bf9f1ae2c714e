"""In-memory result cache keyed by operation identity and context.

Entries are valid while younger than the current ttl *and* stored under a
context compatible with the requesting one. Expired entries are not removed
on lookup; maintenance passes (``remove_expired_entries``,
``perform_memory_optimization``) reclaim them.

Eviction under memory pressure drops the oldest *inserted* entries first.
Lookups do not refresh recency, so this approximates LRU rather than
implementing it.

Examples
--------
Typical use::

    cache = ResultCache(CacheConfig(ttl=600))
    key = cache_key(operation, context)
    if (value := cache.get(key, context)) is None:
        value = compute()
        cache.set(key, value, context, generation_time=12.5)
"""

from __future__ import annotations

import hashlib
import json
import re
import sys
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from phaseflow.kernel.config.models import CacheConfig
from phaseflow.kernel.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from phaseflow.kernel.domain.operation import ExecutionContext, Operation

logger = get_logger(__name__)

_BYTES_PER_MB = 1024 * 1024
_DIGEST_CHARS = 16


class CacheListener(Protocol):
    """Receiver for hit/miss notifications (implemented by ``PerformanceMonitor``)."""

    def record_cache_hit(self, key: str) -> None: ...

    def record_cache_miss(self, key: str) -> None: ...


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A stored result.

    Attributes
    ----------
    value : Any
        The cached operation output
    context : ExecutionContext | None
        Context the value was produced under
    timestamp : float
        ``time.monotonic()`` at insertion, in seconds
    generation_time : float
        Milliseconds the producing work took
    size_bytes : int
        Shallow size estimate of ``value``
    """

    value: Any
    context: ExecutionContext | None
    timestamp: float
    generation_time: float
    size_bytes: int = 0

    def age(self, now: float | None = None) -> float:
        """Seconds since insertion."""
        return (time.monotonic() if now is None else now) - self.timestamp


@dataclass(frozen=True, slots=True)
class CacheMetrics:
    """Point-in-time cache counters (memory in MB)."""

    hits: int
    misses: int
    size: int
    memory_usage: float
    hit_rate: float


def _digest(payload: Any) -> str:
    canonical = json.dumps(payload, sort_keys=True, default=repr, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]


def cache_key(operation: Operation, context: ExecutionContext | None) -> str:
    """Derive the cache key for ``operation`` under ``context``.

    The key combines the operation id, a digest of the id with its
    parameters, and a digest of the context's cache-relevant fields. Parameter
    ordering does not matter; values JSON cannot encode are hashed by ``repr``.

    Parameters
    ----------
    operation : Operation
        Operation whose result is cached
    context : ExecutionContext | None
        Request context; ``None`` hashes as an empty context

    Returns
    -------
    str
        ``"{id}_{operation_digest}_{context_digest}"``
    """
    op_digest = _digest({"id": operation.id, "parameters": dict(operation.parameters)})
    ctx_digest = _digest(context.cache_fields() if context is not None else {})
    return f"{operation.id}_{op_digest}_{ctx_digest}"


def try_cache_key(operation: Operation, context: ExecutionContext | None) -> str | None:
    """``cache_key`` or ``None`` when the parameters cannot be digested.

    Parameters that cannot be canonically serialized (mixed-type dict keys,
    circular references) make that single operation non-cacheable.
    """
    try:
        return cache_key(operation, context)
    except (TypeError, ValueError) as e:
        logger.warning(
            "Cannot derive cache key for '{op}', running uncached: {error}",
            op=operation.id,
            error=e,
        )
        return None


class ResultCache:
    """Thread-safe TTL cache with context compatibility checks.

    Args
    ----
        config: Cache settings
        listener: Optional hit/miss receiver, usually the performance monitor
        ttl_provider: Callable returning the ttl (seconds) to apply on each
            lookup; defaults to ``config.ttl``
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        listener: CacheListener | None = None,
        ttl_provider: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or CacheConfig()
        self.listener = listener
        self._ttl_provider = ttl_provider
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> float:
        """Current entry time-to-live in seconds."""
        return self._ttl_provider() if self._ttl_provider is not None else self.config.ttl

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _is_valid(self, entry: CacheEntry, context: ExecutionContext | None, now: float) -> bool:
        if entry.age(now) >= self.ttl:
            return False
        if context is None:
            return True
        return context.is_compatible_with(entry.context)

    # ------------------------------------------------------------------
    # Lookup and storage
    # ------------------------------------------------------------------

    def get(self, key: str, context: ExecutionContext | None = None) -> Any | None:
        """Return the cached value for ``key`` or ``None``.

        Counts a hit or a miss and notifies the listener either way.
        """
        entry = self.get_entry(key, context)
        return entry.value if entry is not None else None

    def get_entry(self, key: str, context: ExecutionContext | None = None) -> CacheEntry | None:
        """Like ``get`` but returns the whole entry, for callers needing its age."""
        if not self.enabled:
            hit_entry = None
        else:
            with self._lock:
                entry = self._entries.get(key)
                hit_entry = (
                    entry
                    if entry is not None and self._is_valid(entry, context, time.monotonic())
                    else None
                )

        with self._lock:
            if hit_entry is not None:
                self._hits += 1
            else:
                self._misses += 1

        if self.listener is not None:
            if hit_entry is not None:
                self.listener.record_cache_hit(key)
            else:
                self.listener.record_cache_miss(key)
        return hit_entry

    def has(self, key: str, context: ExecutionContext | None = None) -> bool:
        """Whether a valid entry exists, without touching hit/miss counters."""
        if not self.enabled:
            return False
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._is_valid(entry, context, time.monotonic())

    def set(
        self,
        key: str,
        value: Any,
        context: ExecutionContext | None = None,
        generation_time: float = 0.0,
    ) -> None:
        """Store ``value`` under ``key``, overwriting any existing entry."""
        if not self.enabled:
            return
        entry = CacheEntry(
            value=value,
            context=context,
            timestamp=time.monotonic(),
            generation_time=generation_time,
            size_bytes=sys.getsizeof(value),
        )
        with self._lock:
            # Re-inserting moves the key to the end of the insertion order.
            self._entries.pop(key, None)
            self._entries[key] = entry
            over_capacity = len(self._entries) > self.config.max_size

        if over_capacity:
            self.perform_memory_optimization()

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def remove_expired_entries(self) -> int:
        """Drop every entry older than the current ttl; return the count removed."""
        ttl = self.ttl
        now = time.monotonic()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.age(now) >= ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Removed {count} expired cache entries", count=len(expired))
        return len(expired)

    def perform_memory_optimization(self) -> int:
        """Evict the oldest inserted entries until the store fits ``max_size``."""
        with self._lock:
            excess = len(self._entries) - self.config.max_size
            if excess <= 0:
                return 0
            victims = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:excess]
            for key, _ in victims:
                del self._entries[key]
        logger.debug("Evicted {count} cache entries under memory pressure", count=len(victims))
        return len(victims)

    def compress_large_entries(self) -> int:
        """Values are kept in memory as-is; nothing is compressed."""
        return 0

    def rebalance_partitions(self) -> int:
        """The store is a single partition; nothing is rebalanced."""
        return 0

    def clear_by_pattern(self, pattern: str | re.Pattern[str]) -> int:
        """Remove entries whose key matches ``pattern`` anywhere (``re.search``).

        A string that is not a valid regular expression matches as a literal
        substring.
        """
        if isinstance(pattern, str):
            try:
                regex = re.compile(pattern)
            except re.error:
                regex = re.compile(re.escape(pattern))
        else:
            regex = pattern
        with self._lock:
            matched = [key for key in self._entries if regex.search(key)]
            for key in matched:
                del self._entries[key]
        logger.debug(
            "Cleared {count} cache entries matching {pattern}",
            count=len(matched),
            pattern=regex.pattern,
        )
        return len(matched)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_metrics(self) -> CacheMetrics:
        with self._lock:
            total = self._hits + self._misses
            return CacheMetrics(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                memory_usage=sum(e.size_bytes for e in self._entries.values()) / _BYTES_PER_MB,
                hit_rate=self._hits / total if total else 0.0,
            )

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
