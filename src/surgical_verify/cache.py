# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Content cache with TTL expiry and content-hash invalidation.

This module implements the caching layer that lets the graph builder skip
re-extracting imports from files whose content has not changed.

Key Features:
- Per-entry TTL, evaluated lazily on read (no background sweep)
- Content-hash invalidation for file entries
- Separate default TTLs for generic entries and file-content entries
- Thread-safe cache operations
- Statistics tracking for cache performance

Entry lifecycle:
    ABSENT -> PRESENT-VALID -> (TTL expiry OR hash mismatch) -> ABSENT

There is no "stale but present" state visible to callers. The cache is a
performance layer only: a cold cache produces the same results as a warm one.

Thread Safety:
- Single _cache_lock protects _entries and _stats
- Concurrent writes to the same key are last-write-wins; correctness is
  governed by the hash check at read time
"""

import logging
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional

from surgical_verify.models import CacheEntry, CacheStatistics

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60.0  # rules, patterns, lint results
FILE_TTL_SECONDS = 60 * 60.0  # file content is more volatile


class ContentCache:
    """Key-value cache with TTL expiry and content-hash validation.

    Usage:
        cache = ContentCache()
        cache.set_file(path, specifiers, content_hash)
        specifiers = cache.get_file(path, content_hash)  # None on miss
        cache.close()

    Instances are constructed explicitly and passed to the components that
    need them; there is no module-level shared instance.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        file_ttl: float = FILE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize content cache.

        Args:
            default_ttl: TTL in seconds for generic entries (default: 24h).
            file_ttl: TTL in seconds for file-content entries (default: 1h).
            clock: Time source returning seconds. Injectable for tests.
        """
        self._entries: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._file_ttl = file_ttl
        self._clock = clock

        self._stats = CacheStatistics(
            hits=0,
            misses=0,
            expirations=0,
            hash_invalidations=0,
            corrupt_evictions=0,
            current_entry_count=0,
            peak_entry_count=0,
        )

        self._cache_lock = Lock()
        self._closed = False

        logger.debug(
            f"ContentCache initialized with default_ttl={default_ttl}s, file_ttl={file_ttl}s"
        )

    # ------------------------------------------------------------------
    # Key helpers
    # ------------------------------------------------------------------

    @staticmethod
    def file_key(path: str, content_hash: str) -> str:
        """Hash-qualified key for file content."""
        return f"file:{path}:{content_hash}"

    @staticmethod
    def legacy_file_key(path: str) -> str:
        """Hash-less key for file content.

        Legacy compatibility: remove once no caller reads the hash-less key.
        """
        return f"file:{path}"

    @staticmethod
    def lint_key(path: str, content_hash: str) -> str:
        """Key for a cached lint result of one file revision."""
        return f"lint:{path}:{content_hash}"

    @staticmethod
    def rule_key(rule_id: str) -> str:
        """Key for a cached rule definition."""
        return f"rule:{rule_id}"

    @staticmethod
    def pattern_key(pattern_type: str) -> str:
        """Key for a cached pattern set."""
        return f"pattern:{pattern_type}"

    # ------------------------------------------------------------------
    # Generic entries
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value.

        Args:
            key: Cache key.

        Returns:
            The stored value, or None if absent, expired or corrupt.
        """
        with self._cache_lock:
            entry = self._lookup(key)
            if entry is None:
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return entry.data

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        content_hash: Optional[str] = None,
    ) -> None:
        """Insert or overwrite an entry.

        Args:
            key: Cache key.
            value: Value to store.
            ttl: TTL in seconds. Defaults to the generic TTL.
            content_hash: Optional hash the entry is valid for.
        """
        with self._cache_lock:
            self._store(key, value, ttl if ttl is not None else self._default_ttl, content_hash)

    def has(self, key: str) -> bool:
        """Check for a live entry, applying the same expiry rules as get()."""
        with self._cache_lock:
            return self._lookup(key) is not None

    def delete(self, key: str) -> None:
        """Remove an entry if present."""
        with self._cache_lock:
            self._entries.pop(key, None)
            self._stats.current_entry_count = len(self._entries)

    # ------------------------------------------------------------------
    # File entries
    # ------------------------------------------------------------------

    def get_file(self, path: str, current_hash: str) -> Optional[Any]:
        """Get cached data for a file revision.

        Looks up the hash-qualified key first. If absent, falls back to the
        legacy path-only key and validates its stored hash; a mismatch evicts
        the legacy entry and the hash-qualified entry of the revision it recorded.

        Args:
            path: File path.
            current_hash: Hash of the file's current content.

        Returns:
            Cached data, or None on miss.
        """
        with self._cache_lock:
            key = self.file_key(path, current_hash)
            entry = self._lookup(key)
            if entry is not None and entry.content_hash not in (None, current_hash):
                self._evict(key)
                self._stats.hash_invalidations += 1
                entry = None

            if entry is None:
                legacy_key = self.legacy_file_key(path)
                # Runs before expiry checks so an expired legacy entry still
                # leads to its revision
                self._drop_previous_revision(path, current_hash)
                entry = self._lookup(legacy_key)
                if entry is not None and entry.content_hash != current_hash:
                    logger.debug(f"Content hash changed for {path}, evicting cached entry")
                    self._evict(legacy_key)
                    self._stats.hash_invalidations += 1
                    entry = None

            if entry is None:
                self._stats.misses += 1
                return None

            self._stats.hits += 1
            return entry.data

    def set_file(
        self,
        path: str,
        value: Any,
        content_hash: str,
        ttl: Optional[float] = None,
    ) -> None:
        """Cache data for a file revision.

        Writes both the hash-qualified key and the legacy path-only key with
        the same TTL. The hash-qualified entry of the revision the legacy key
        recorded before is dropped.

        Args:
            path: File path.
            value: Data derived from the file content.
            content_hash: Hash of the content the data was derived from.
            ttl: TTL in seconds. Defaults to the file TTL.
        """
        effective_ttl = ttl if ttl is not None else self._file_ttl
        with self._cache_lock:
            self._drop_previous_revision(path, content_hash)
            self._store(self.file_key(path, content_hash), value, effective_ttl, content_hash)
            # Legacy compatibility: remove once no caller reads the hash-less key.
            self._store(self.legacy_file_key(path), value, effective_ttl, content_hash)

    def invalidate_file(self, path: str) -> None:
        """Drop every file entry for a path.

        Registered as a file watcher callback so edits are never served from
        cache, even before the hash check runs.
        """
        with self._cache_lock:
            legacy_key = self.legacy_file_key(path)
            prefix = legacy_key + ":"
            keys_to_remove = [k for k in self._entries if k == legacy_key or k.startswith(prefix)]
            for key in keys_to_remove:
                del self._entries[key]
            self._stats.current_entry_count = len(self._entries)
            if keys_to_remove:
                logger.debug(f"Invalidated {len(keys_to_remove)} cache entries for {path}")

    # ------------------------------------------------------------------
    # Lifecycle and statistics
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Clear all cache entries.

        Used for:
        - Testing: Reset cache to clean state
        - Manual cache management
        """
        with self._cache_lock:
            self._entries.clear()
            self._stats.current_entry_count = 0

            logger.debug("Cache cleared")

    def close(self) -> None:
        """Release all entries at process exit. Safe to call twice."""
        if self._closed:
            return
        self.clear()
        self._closed = True
        logger.debug("Cache closed")

    def __enter__(self) -> "ContentCache":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __len__(self) -> int:
        with self._cache_lock:
            return len(self._entries)

    def get_statistics(self) -> CacheStatistics:
        """Get cache performance statistics.

        Returns:
            CacheStatistics copy with current metrics.
        """
        with self._cache_lock:
            return CacheStatistics.from_dict(self._stats.to_dict())

    def get_hit_rate(self) -> float:
        """Calculate cache hit rate.

        Returns:
            Hit rate as percentage (0.0-100.0), or 0.0 if no reads.
        """
        with self._cache_lock:
            total_reads = self._stats.hits + self._stats.misses
            if total_reads == 0:
                return 0.0
            return (self._stats.hits / total_reads) * 100.0

    # ------------------------------------------------------------------
    # Internals (caller holds _cache_lock)
    # ------------------------------------------------------------------

    def _store(self, key: str, value: Any, ttl: float, content_hash: Optional[str]) -> None:
        self._entries[key] = CacheEntry(
            data=value,
            timestamp=self._clock(),
            ttl=ttl,
            content_hash=content_hash,
        )
        self._stats.current_entry_count = len(self._entries)
        if self._stats.current_entry_count > self._stats.peak_entry_count:
            self._stats.peak_entry_count = self._stats.current_entry_count

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for key, evicting it if expired or corrupt."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        try:
            expired = entry.is_expired(self._clock())
        except (AttributeError, TypeError) as e:
            logger.warning(f"Evicting corrupt cache entry {key!r}: {e}")
            self._evict(key)
            self._stats.corrupt_evictions += 1
            return None

        if expired:
            self._evict(key)
            self._stats.expirations += 1
            return None

        return entry

    def _evict(self, key: str) -> None:
        self._entries.pop(key, None)
        self._stats.current_entry_count = len(self._entries)

    def _drop_previous_revision(self, path: str, content_hash: str) -> None:
        """Evict the hash-qualified entry of the revision the legacy key records."""
        previous = self._entries.get(self.legacy_file_key(path))
        old_hash = getattr(previous, "content_hash", None)
        if old_hash and old_hash != content_hash:
            self._evict(self.file_key(path, old_hash))
