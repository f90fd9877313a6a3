"""
Cache Utilities
In-memory, process-wide cache with per-key TTL

Reduces database load by caching frequently accessed data.

Cache Strategy:
- Tracks list: 5 minutes TTL (data changes infrequently)
- Search results: 1 minute TTL (need fresher results)
- Single track: 10 minutes TTL
- Podcasts: 5 minutes TTL
- Recommendations: 5 minutes TTL per user

Expired entries are treated as absent as soon as they expire and are
physically removed either on access or by the background sweeper thread.
get_or_set() does not coalesce concurrent misses: two requests missing the
same key at the same time both run the compute function.
"""

import heapq
import logging
import threading
import time
from typing import Any, Callable, Optional

from config import CACHE_CHECK_PERIOD, CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)

# Cache key prefixes
CACHE_KEYS = {
    'TRACKS_LIST': 'tracks:list',
    'TRACK_SINGLE': 'track:',
    'PODCASTS_LIST': 'podcasts:list',
    'PODCAST_SINGLE': 'podcast:',
    'SEARCH': 'search:',
    'GENRES': 'genres',
    'STATS': 'stats:',
    'RECOMMENDATIONS': 'recommendations:',
}

# TTL values in seconds
TTL = {
    'DEFAULT': 300,
    'TRACKS_LIST': 300,
    'TRACK_SINGLE': 600,
    'SEARCH': 60,
    'PODCASTS': 300,
    'GENRES': 3600,
    'STATS': 120,
    'RECOMMENDATIONS': 300,
}

WILDCARD = '*'


class MemoryCache:
    """
    Key-value store with per-key expiry

    Entries are stored as key -> (value, expires_at). Values are returned
    as-is, no copies are made. All map access happens under one lock, which
    is never held while a compute function runs.

    hits/misses are counted since the cache was created; flush() clears
    entries but not the counters.

    With max_entries set, a heap of (expires_at, key) tracks which entry
    expires next. Overwritten or deleted keys leave stale heap items that
    are skipped on pop and dropped when the heap is rebuilt.
    """

    def __init__(self, max_entries: int = 0, clock: Callable[[], float] = time.monotonic):
        self._entries = {}
        self._expiry_heap = []
        self._lock = threading.RLock()
        self._clock = clock
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def _lookup(self, key):
        """Return (found, value), dropping the entry if it has expired"""
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return False, None
        return True, value

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            found, value = self._lookup(key)
            if found:
                self.hits += 1
                return value
            self.misses += 1
            return default

    def has(self, key: str) -> bool:
        with self._lock:
            found, _ = self._lookup(key)
            return found

    def set(self, key: str, value: Any, ttl: float = TTL['DEFAULT']) -> None:
        with self._lock:
            if key not in self._entries and self.max_entries:
                self._make_room()
            expires_at = self._clock() + ttl
            self._entries[key] = (value, expires_at)
            if self.max_entries:
                heapq.heappush(self._expiry_heap, (expires_at, key))
                if len(self._expiry_heap) > 2 * len(self._entries) + 16:
                    self._rebuild_heap()

    def _rebuild_heap(self):
        self._expiry_heap = [(expires_at, k) for k, (_, expires_at) in self._entries.items()]
        heapq.heapify(self._expiry_heap)

    def _make_room(self):
        """Evict the soonest-expiring entries (expired ones first) until a new key fits"""
        while len(self._entries) >= self.max_entries and self._expiry_heap:
            expires_at, key = heapq.heappop(self._expiry_heap)
            entry = self._entries.get(key)
            if entry is None or entry[1] != expires_at:
                continue
            del self._entries[key]
            logger.debug(f"[Cache] EVICT: {key}")

    def get_or_set(self, key: str, compute_fn: Callable[[], Any], ttl: float = TTL['DEFAULT']) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss

        Args:
            key: Cache key
            compute_fn: Zero-argument callable producing the value
            ttl: Seconds the computed value stays fresh

        Returns:
            Cached or freshly computed value. None results are returned
            but not cached. Exceptions from compute_fn propagate and
            nothing is stored.
        """
        with self._lock:
            found, value = self._lookup(key)
            if found:
                self.hits += 1
                logger.debug(f"[Cache] HIT: {key}")
                return value
            self.misses += 1

        logger.debug(f"[Cache] MISS: {key}")
        value = compute_fn()

        if value is not None:
            self.set(key, value, ttl)

        return value

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete(self, key: str) -> int:
        """
        Delete a key, or every key sharing a prefix when key ends with '*'

        Returns:
            Number of keys removed
        """
        with self._lock:
            if key.endswith(WILDCARD):
                prefix = key[:-len(WILDCARD)]
                matching = [k for k in self._entries if k.startswith(prefix)]
                for k in matching:
                    del self._entries[k]
                return len(matching)

            if key in self._entries:
                del self._entries[key]
                return 1
            return 0

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()
            self._expiry_heap.clear()
        logger.info("[Cache] Flushed all cache")

    def invalidate(self, category: str) -> int:
        """
        Invalidate cache entries for an entity type

        'tracks' clears track lists and search results, 'podcasts' clears
        podcast lists, 'all' flushes everything. Anything else is deleted
        as a literal key.

        Returns:
            Number of keys removed
        """
        if category == 'tracks':
            return (self.delete(CACHE_KEYS['TRACKS_LIST'] + WILDCARD)
                    + self.delete(CACHE_KEYS['SEARCH'] + WILDCARD))
        if category == 'podcasts':
            return self.delete(CACHE_KEYS['PODCASTS_LIST'] + WILDCARD)
        if category == 'all':
            with self._lock:
                removed = len(self._entries)
            self.flush()
            return removed
        return self.delete(category)

    # ------------------------------------------------------------------
    # Expiry & stats
    # ------------------------------------------------------------------

    def _sweep_locked(self):
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def sweep_expired(self) -> int:
        """Physically remove expired entries, returning how many were dropped"""
        with self._lock:
            return self._sweep_locked()

    def keys(self):
        with self._lock:
            self._sweep_locked()
            return list(self._entries)

    def get_stats(self) -> dict:
        with self._lock:
            self._sweep_locked()
            return {
                'hits': self.hits,
                'misses': self.misses,
                'keys': len(self._entries),
            }


# ============================================================================
# PROCESS-WIDE INSTANCE
# ============================================================================

cache = MemoryCache(max_entries=CACHE_MAX_ENTRIES)

sweeper_thread: Optional[threading.Thread] = None
sweeper_stop = threading.Event()


def cache_sweeper(check_period=CACHE_CHECK_PERIOD):
    """Background thread that drops expired entries every check_period seconds"""
    logger.info("Starting cache sweeper thread...")

    while not sweeper_stop.wait(check_period):
        try:
            removed = cache.sweep_expired()
            if removed:
                logger.debug(f"[Cache] Swept {removed} expired keys")
        except Exception as e:
            logger.error(f"Error in cache sweeper thread: {e}")

    logger.info("Cache sweeper thread stopped")


def start_sweeper(check_period=CACHE_CHECK_PERIOD):
    """Start the background sweeper thread"""
    global sweeper_thread

    if sweeper_thread is None or not sweeper_thread.is_alive():
        sweeper_stop.clear()
        sweeper_thread = threading.Thread(
            target=cache_sweeper,
            args=(check_period,),
            daemon=True,
            name="CacheSweeper"
        )
        sweeper_thread.start()
        logger.info("Cache sweeper thread started")


def stop_sweeper():
    """Stop the background sweeper thread"""
    global sweeper_thread

    sweeper_stop.set()
    if sweeper_thread:
        sweeper_thread.join(timeout=5)
        sweeper_thread = None


def get_or_set(key, compute_fn, ttl=TTL['DEFAULT']):
    return cache.get_or_set(key, compute_fn, ttl)


def get(key, default=None):
    return cache.get(key, default)


def set(key, value, ttl=TTL['DEFAULT']):
    cache.set(key, value, ttl)


def delete(key):
    return cache.delete(key)


def flush():
    cache.flush()


def invalidate(category):
    return cache.invalidate(category)


def get_stats():
    return cache.get_stats()
