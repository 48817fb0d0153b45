"""
Response cache — in-memory TTL store for registry and advisory lookups.

One instance is built per process by the gateway and injected into the
services that need it.  Nothing is persisted.

Expiry is checked on every read (``get``/``has`` never return a stale
entry), and an optional background sweeper purges entries nobody reads.
When ``max_keys`` is reached the oldest-inserted entry is evicted; this
is insertion order, not LRU.

Keys are built with ``create_key`` so that identical logical requests
always land on the same key and different ones never collide.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, computed_field

from npmplus.core.observability.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

_OPERATION_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl_seconds: float

    def expired(self, now: float) -> bool:
        # ttl 0 means the entry never expires
        return self.ttl_seconds > 0 and now - self.inserted_at >= self.ttl_seconds

    def remaining(self, now: float) -> float:
        if self.ttl_seconds <= 0:
            return 0.0
        return max(0.0, self.ttl_seconds - (now - self.inserted_at))


class CacheMetrics(BaseModel):
    """Snapshot of cache counters. Everything but key_count is cumulative."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    key_count: int = 0
    sets: int = 0
    deletes: int = 0

    @computed_field
    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @computed_field
    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        return self.hits / total if total else 0.0


def create_key(operation: str, *parts: str | int | float | bool | None) -> str:
    """Compose a cache key from an operation name and its arguments.

    Every part is JSON-encoded, so strings are quoted and escaped and the
    ``:`` separator can never be confused with argument content::

        create_key("search", "react", 25, 0)  ->  'search:"react":25:0'

    Argument order matters; callers pass arguments in a fixed order.
    """
    if not _OPERATION_NAME.match(operation):
        raise ValueError(f"Invalid cache operation name: {operation!r}")
    encoded = [json.dumps(p, ensure_ascii=False) for p in parts]
    return ":".join([operation, *encoded])


class ResponseCache:
    """Thread-safe TTL cache with a key-count bound and hit/miss metrics.

    Args:
        default_ttl: Seconds used when ``set`` is called without a TTL.
        check_period: Seconds between background sweeps (0 = no sweeper).
        max_keys: Maximum number of live entries.
        metrics: Registry to record counters in (a private one if None).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        default_ttl: float = 600,
        check_period: float = 120,
        max_keys: int = 1000,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")
        if default_ttl < 0:
            raise ValueError("default_ttl must not be negative")

        self._default_ttl = default_ttl
        self._check_period = check_period
        self._max_keys = max_keys
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

        registry = metrics or MetricsRegistry()
        self._hits = registry.counter("cache_hits")
        self._misses = registry.counter("cache_misses")
        self._evictions = registry.counter("cache_evictions")
        self._sets = registry.counter("cache_sets")
        self._deletes = registry.counter("cache_deletes")
        self._size = registry.gauge("cache_keys")

        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    @property
    def max_keys(self) -> int:
        return self._max_keys

    # ── Core operations ─────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or expired entry."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._misses.inc()
                return None
            self._hits.inc()
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``.

        ``ttl`` None uses the default TTL; 0 stores without expiry.
        Re-setting a key replaces it and makes it the newest entry.
        """
        if ttl is None:
            ttl = self._default_ttl
        if ttl < 0:
            raise ValueError("ttl must not be negative")

        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self._max_keys:
                self._evict_for_space()
            self._entries[key] = CacheEntry(key, value, now, ttl)
            self._sets.inc()
            self._size.set(len(self._entries))

    def delete(self, key: str) -> bool:
        """Remove a key. Returns whether it was present."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            self._deletes.inc()
            self._size.set(len(self._entries))
            return True

    def has(self, key: str) -> bool:
        """Whether a live (unexpired) entry exists. Does not count as a hit."""
        with self._lock:
            return self._live_entry(key) is not None

    def clear(self) -> None:
        """Drop every entry. Counters are kept."""
        with self._lock:
            self._entries.clear()
            self._size.set(0)

    def get_metrics(self) -> CacheMetrics:
        with self._lock:
            key_count = len(self._entries)
        return CacheMetrics(
            hits=self._hits.value,
            misses=self._misses.value,
            evictions=self._evictions.value,
            key_count=key_count,
            sets=self._sets.value,
            deletes=self._deletes.value,
        )

    # ── TTL helpers ─────────────────────────────────────────────

    def keys(self) -> list[str]:
        """Live keys, oldest first."""
        with self._lock:
            now = self._clock()
            return [k for k, e in self._entries.items() if not e.expired(now)]

    def get_ttl(self, key: str) -> float | None:
        """Seconds left for ``key`` (0.0 = no expiry), or None if absent."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            return entry.remaining(self._clock())

    def set_ttl(self, key: str, ttl: float) -> bool:
        """Restart ``key``'s lifetime with a new TTL. Keeps its position."""
        if ttl < 0:
            raise ValueError("ttl must not be negative")
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            entry.inserted_at = self._clock()
            entry.ttl_seconds = ttl
            return True

    def sweep(self) -> int:
        """Purge every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if e.expired(now)]
            for k in stale:
                del self._entries[k]
            if stale:
                self._evictions.inc(len(stale))
                self._size.set(len(self._entries))
        if stale:
            logger.debug("Cache sweep removed %d expired entries", len(stale))
        return len(stale)

    # ── Background sweeper ──────────────────────────────────────

    def start(self) -> None:
        """Start the periodic sweeper thread (no-op if check_period is 0)."""
        if self._check_period <= 0 or self._sweeper is not None:
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="npmplus-cache-sweeper", daemon=True,
        )
        self._sweeper.start()

    def close(self) -> None:
        """Stop the sweeper thread, if running."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __enter__(self) -> ResponseCache:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._check_period):
            self.sweep()

    # ── Internals (caller holds the lock) ───────────────────────

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._evictions.inc()
            self._size.set(len(self._entries))
            return None
        return entry

    def _evict_for_space(self) -> None:
        oldest_key, _ = self._entries.popitem(last=False)
        self._evictions.inc()
        logger.debug("Cache full (%d keys), evicted oldest: %s", self._max_keys, oldest_key)
