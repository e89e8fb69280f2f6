# Overview: Short-TTL query cache for derived reads and the store-key -> cache-key dependency table.

"""
Query Cache

fetch(key, producer) memoizes the result of an expensive derived read (e.g.
"all projects with reconciled progress") for a fixed TTL measured from the
moment the value was stored. Expiry is checked lazily on the next fetch of
that key; nothing runs in the background.

The cache never listens to the change notifier. Anything that can make a
cached value wrong must invalidate it. To keep that from depending on every
write path remembering every key, invalidation goes through
CACHE_DEPENDENCIES: a table from store keys to the cache keys they feed.
Local writers and the synchronization layer both call
CacheInvalidator.store_key_changed(key).
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Callable


logger = logging.getLogger(__name__)


DEFAULT_TTL_SECONDS = 5 * 60


def projects_cache_key(factory: str | None = None) -> str:
    return f"projects_{factory or 'all'}"


def entries_cache_key(factory: str | None = None) -> str:
    return f"production_entries_{factory or 'all'}"


def entry_cache_key(entry_id) -> str:
    return f"production_entry_{entry_id}"


def invoices_cache_key(project_id=None) -> str:
    return f"invoices_{'all' if project_id is None else project_id}"


CLIENTS_CACHE_KEY = "clients"
DASHBOARD_CACHE_KEY = "dashboard"


# store key (full-match regex) -> cache key patterns (fnmatch, formatted with the regex groups)
CACHE_DEPENDENCIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (r"clients", (
        CLIENTS_CACHE_KEY,
        DASHBOARD_CACHE_KEY,
    )),
    (r"projects", (
        "projects_*",
        DASHBOARD_CACHE_KEY,
    )),
    (r"entries_(?P<factory>.+)", (
        "production_entries_{factory}",
        "production_entries_all",
        "production_entry_*",
        "projects_*",
        DASHBOARD_CACHE_KEY,
    )),
    (r"invoices", (
        "invoices_*",
        DASHBOARD_CACHE_KEY,
    )),
)


def stale_cache_patterns(store_key: str, table=CACHE_DEPENDENCIES) -> list[str]:
    """Cache key patterns that a write to store_key can make stale."""
    patterns: list[str] = []
    for store_pattern, cache_patterns in table:
        match = re.fullmatch(store_pattern, store_key)
        if not match:
            continue
        groups = {k: v for k, v in match.groupdict().items() if v is not None}
        for pattern in cache_patterns:
            formatted = pattern.format(**groups)
            if formatted not in patterns:
                patterns.append(formatted)
    return patterns


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class QueryCache:

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def _fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self.ttl_seconds

    def fetch(self, key: str, producer: Callable[[], Any], use_cache: bool = True) -> Any:
        """
        Cached value for key, or producer() when missing, expired or bypassed.

        A bypassed fetch (use_cache=False) still stores the fresh value so
        later cached reads see it. Producer exceptions propagate and leave
        the cache untouched.
        """
        if use_cache:
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and self._fresh(entry):
                    logger.debug("Cache hit %s", key)
                    return entry.value
        logger.debug("Cache miss %s", key)
        value = producer()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
        return value

    def contains(self, key: str) -> bool:
        """True when key holds a non-expired value."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._fresh(entry)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_matching(self, pattern: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if fnmatchcase(k, pattern)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()


class CacheInvalidator:
    """Applies the dependency table to a cache."""

    def __init__(self, cache: QueryCache, table=CACHE_DEPENDENCIES):
        self.cache = cache
        self.table = table

    def store_key_changed(self, store_key: str) -> int:
        dropped = 0
        for pattern in stale_cache_patterns(store_key, self.table):
            dropped += self.cache.invalidate_matching(pattern)
        if dropped:
            logger.debug("Invalidated %d cache entries after write to %s", dropped, store_key)
        return dropped
