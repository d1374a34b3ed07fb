"""
cache.py — in-memory response cache with per-entry TTL, stale reads and a
background expiry sweep.

Expired entries stop being returned by get() immediately, but they stay
resident, and readable through get_stale(), until the next sweep evicts them.
This gives the market data service something to fall back on when an upstream
provider is down.

One ResponseCache is built at application start and handed to the services
that need it; nothing here is a module-level singleton.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import DEFAULT_TTL, STATS_LOG_INTERVAL, SWEEP_INTERVAL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float    # absolute epoch seconds


@dataclass(frozen=True)
class CacheStats:
    keys: int
    hits: int            # cumulative for the process, not reset by clear()
    misses: int


class ResponseCache:
    """Thread-safe TTL cache. A single lock guards the store and the counters."""

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        self._last_stats_log = clock()

    # ── Reads ────────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if the key is absent or expired."""
        if not key:
            return None
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                self._hits += 1
                value = entry.value
            else:
                self._misses += 1
                value = None
        logger.debug("Cache %s for key: %s", "HIT" if value is not None else "MISS", key)
        return value

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the resident value even if it has expired."""
        if not key:
            return None
        with self._lock:
            entry = self._store.get(key)
        return entry.value if entry is not None else None

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._store.get(key)
            return entry is not None and self._clock() < entry.expires_at

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._store)

    def get_ttl_remaining(self, key: str) -> float:
        """
        Return the absolute expiry timestamp for ``key`` (epoch seconds), or 0
        when the key is not resident.
        """
        with self._lock:
            entry = self._store.get(key)
        return entry.expires_at if entry is not None else 0

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(keys=len(self._store), hits=self._hits, misses=self._misses)

    # ── Writes ───────────────────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store ``value`` under ``key`` and reset its expiry to now + ttl.

        Never raises: a failed cache write must not break the fetch that
        produced the value.  ``None`` is not storable, since get() uses it
        to signal a miss.
        """
        if value is None:
            logger.warning("Cache SET ignored for key %s: None is not cacheable", key)
            return
        ttl = self.default_ttl if ttl is None else ttl
        try:
            entry = CacheEntry(value=value, expires_at=self._clock() + float(ttl))
            with self._lock:
                self._store[key] = entry
        except Exception:
            logger.exception("Cache SET error for key %s", key)
            return
        logger.debug("Cache SET for key: %s, TTL: %ss", key, ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def invalidate(self, pattern: str) -> int:
        """Remove every key containing ``pattern``. An empty pattern removes nothing."""
        if not pattern:
            return 0
        with self._lock:
            matching = [key for key in self._store if pattern in key]
            for key in matching:
                del self._store[key]
        logger.info("Cache invalidated %d keys matching pattern: %s", len(matching), pattern)
        return len(matching)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
        logger.info("Cache cleared completely")

    # ── Expiry sweep ─────────────────────────────────────────────────────────

    def sweep(self) -> int:
        """Physically remove expired entries. Returns the number evicted."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._store.items() if entry.expires_at <= now]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug("Cache sweep evicted %d expired keys", len(expired))
        if now - self._last_stats_log >= STATS_LOG_INTERVAL:
            self._last_stats_log = now
            logger.debug("Cache statistics: %s", self.get_stats())
        return len(expired)

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")

    def start(self) -> None:
        """Start the background sweeper thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="response-cache-sweeper", daemon=True
        )
        self._sweeper.start()
        logger.info("Cache sweeper started (every %ss)", self.sweep_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
