"""
Search Cache - MarketSignal storage with a fixed TTL

Stores:
- MemorySignalStore: thread-safe LRU with per-entry expiry and hit stats
- SqliteSignalStore: durable search_cache table, reads filter on expires_at
- TieredSignalStore: memory first, durable second (memory back-filled on hit)

Every store implements the same contract: get(key) returns a CachedSignal
or None when missing/expired, put(key, signal, ttl) upserts. Durable store
failures raise CacheError; the orchestrator degrades them to a miss.
"""

import json
import logging
import sqlite3
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from sellcheck.config import CACHE
from sellcheck.pipeline.models import CachedSignal, MarketSignal, utc_now
from .exceptions import CacheError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class MemorySignalStore:
    """
    Thread-safe LRU cache of CachedSignal entries

    Features:
    - Fixed TTL per entry (overwritten, never appended, on put)
    - LRU eviction when max size reached
    - Hit tracking for the health endpoint
    """

    def __init__(self, max_size: Optional[int] = None, clock: Clock = utc_now):
        self.max_size = max_size or CACHE.max_size
        self.clock = clock
        self._cache: "OrderedDict[str, CachedSignal]" = OrderedDict()
        self._lock = threading.RLock()
        self._stats = {
            'hits': 0,
            'misses': 0,
            'evictions': 0,
            'expirations': 0
        }

    def get(self, key: str) -> Optional[CachedSignal]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats['misses'] += 1
                return None

            if entry.is_expired(self.clock()):
                del self._cache[key]
                self._stats['expirations'] += 1
                self._stats['misses'] += 1
                return None

            # Move to end (most recently used)
            self._cache.move_to_end(key)
            self._stats['hits'] += 1
            return entry

    def put(self, key: str, signal: MarketSignal, ttl: int = CACHE.ttl_seconds) -> CachedSignal:
        now = self.clock()
        entry = CachedSignal(signal=signal, cached_at=now, expires_at=now + timedelta(seconds=ttl))
        self.store(key, entry)
        return entry

    def store(self, key: str, entry: CachedSignal) -> None:
        """Insert a prebuilt entry (keeps its original timestamps)."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            # Evict oldest if at capacity
            while len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)
                self._stats['evictions'] += 1
            self._cache[key] = entry

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def flush(self) -> int:
        """Clear all cache entries, return count cleared"""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries, return count removed"""
        now = self.clock()
        with self._lock:
            expired_keys = [k for k, v in self._cache.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._cache[key]
            self._stats['expirations'] += len(expired_keys)
        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_requests = self._stats['hits'] + self._stats['misses']
            hit_rate = (
                self._stats['hits'] / total_requests * 100
                if total_requests > 0 else 0
            )
            return {
                'size': len(self._cache),
                'max_size': self.max_size,
                'hits': self._stats['hits'],
                'misses': self._stats['misses'],
                'hit_rate': f"{hit_rate:.1f}%",
                'evictions': self._stats['evictions'],
                'expirations': self._stats['expirations'],
            }


class SqliteSignalStore:
    """Durable store mirroring the search_cache record (one row per key)."""

    def __init__(self, path: Union[str, Path], clock: Clock = utc_now):
        self.path = str(path)
        self.clock = clock
        self._lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(self.path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS search_cache (
                    query_hash TEXT PRIMARY KEY,
                    query TEXT,
                    sold_count_90d INTEGER,
                    active_count INTEGER,
                    sell_through_rate REAL,
                    avg_sold_price REAL,
                    median_sold_price REAL,
                    price_low REAL,
                    price_high REAL,
                    avg_days_to_sell INTEGER,
                    verdict TEXT,
                    data_source TEXT,
                    raw_data TEXT,
                    cached_at TEXT,
                    expires_at TEXT
                )
            """)
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_search_cache_expires ON search_cache(expires_at)")
            self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError(f"Could not open cache database at {self.path}", cause=e) from e
        logger.info(f"[CACHE] SQLite cache initialized at: {self.path}")

    def get(self, key: str) -> Optional[CachedSignal]:
        now = self.clock()
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT raw_data, cached_at, expires_at FROM search_cache "
                    "WHERE query_hash = ? AND expires_at > ?",
                    (key, now.isoformat()),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError("Cache read failed", cause=e) from e

        if row is None:
            return None
        cached_at = datetime.fromisoformat(row["cached_at"])
        signal = MarketSignal.from_dict(json.loads(row["raw_data"]))
        signal.cached_at = cached_at
        return CachedSignal(
            signal=signal,
            cached_at=cached_at,
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )

    def put(self, key: str, signal: MarketSignal, ttl: int = CACHE.ttl_seconds) -> CachedSignal:
        now = self.clock()
        entry = CachedSignal(signal=signal, cached_at=now, expires_at=now + timedelta(seconds=ttl))
        try:
            with self._lock:
                self.conn.execute("""
                    INSERT INTO search_cache (
                        query_hash, query, sold_count_90d, active_count, sell_through_rate,
                        avg_sold_price, median_sold_price, price_low, price_high,
                        avg_days_to_sell, verdict, data_source, raw_data, cached_at, expires_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(query_hash) DO UPDATE SET
                        query = excluded.query,
                        sold_count_90d = excluded.sold_count_90d,
                        active_count = excluded.active_count,
                        sell_through_rate = excluded.sell_through_rate,
                        avg_sold_price = excluded.avg_sold_price,
                        median_sold_price = excluded.median_sold_price,
                        price_low = excluded.price_low,
                        price_high = excluded.price_high,
                        avg_days_to_sell = excluded.avg_days_to_sell,
                        verdict = excluded.verdict,
                        data_source = excluded.data_source,
                        raw_data = excluded.raw_data,
                        cached_at = excluded.cached_at,
                        expires_at = excluded.expires_at
                """, (
                    key,
                    signal.query,
                    signal.sold_count,
                    signal.active_count,
                    signal.sell_through_rate,
                    signal.avg_price,
                    signal.median_price,
                    signal.price_low,
                    signal.price_high,
                    signal.avg_days_to_sell,
                    signal.verdict.value,
                    signal.data_source.value,
                    json.dumps(signal.to_dict()),
                    entry.cached_at.isoformat(),
                    entry.expires_at.isoformat(),
                ))
                self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError("Cache write failed", cause=e) from e
        return entry

    def flush(self) -> int:
        try:
            with self._lock:
                cursor = self.conn.execute("DELETE FROM search_cache")
                self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError("Cache flush failed", cause=e) from e
        return cursor.rowcount

    def cleanup_expired(self) -> int:
        try:
            with self._lock:
                cursor = self.conn.execute(
                    "DELETE FROM search_cache WHERE expires_at <= ?", (self.clock().isoformat(),)
                )
                self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError("Cache cleanup failed", cause=e) from e
        return cursor.rowcount

    def get_stats(self) -> Dict[str, Any]:
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT COUNT(*) AS total, SUM(CASE WHEN expires_at > ? THEN 1 ELSE 0 END) AS live "
                    "FROM search_cache",
                    (self.clock().isoformat(),),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError("Cache stats failed", cause=e) from e
        return {'rows': row["total"] or 0, 'live': row["live"] or 0, 'path': self.path}

    def close(self) -> None:
        with self._lock:
            self.conn.close()


class TieredSignalStore:
    """Memory in front of a durable store"""

    def __init__(self, memory: MemorySignalStore, durable: Optional[SqliteSignalStore] = None):
        self.memory = memory
        self.durable = durable

    def get(self, key: str) -> Optional[CachedSignal]:
        entry = self.memory.get(key)
        if entry is not None or self.durable is None:
            return entry

        entry = self.durable.get(key)
        if entry is not None:
            self.memory.store(key, entry)
        return entry

    def put(self, key: str, signal: MarketSignal, ttl: int = CACHE.ttl_seconds) -> CachedSignal:
        # Memory always gets the result, even if the durable write fails
        entry = self.memory.put(key, signal, ttl)
        if self.durable is not None:
            self.durable.put(key, signal, ttl)
        return entry

    def flush(self) -> int:
        count = self.memory.flush()
        if self.durable is not None:
            count = max(count, self.durable.flush())
        return count

    def close(self) -> None:
        if self.durable is not None:
            self.durable.close()

    def get_stats(self) -> Dict[str, Any]:
        stats = {'memory': self.memory.get_stats()}
        if self.durable is not None:
            try:
                stats['durable'] = self.durable.get_stats()
            except CacheError as e:
                stats['durable'] = {'error': e.message}
        return stats
