"""
Memory Store Implementation
内存存储实现

Thread-safe, byte-bounded in-memory key/value store.

Features:
- Thread-safe operations with Lock
- Capacity measured in bytes, not entries
- Insertion-order (FIFO) eviction when capacity is exceeded
- Optional per-entry TTL with lazy expiry on read
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """
    Cache entry data structure
    缓存条目数据结构
    """
    key: str                         # Lookup key
    value: V                         # Stored payload
    size_bytes: int                  # Bytes counted against capacity
    created_at: float                # Insertion time
    last_accessed: float             # Refreshed on read, diagnostics only
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired"""
        return self.expires_at is not None and now > self.expires_at


class BoundedCache(Generic[V]):
    """
    Byte-bounded in-memory storage
    按字节限制容量的内存存储

    Eviction removes the oldest *inserted* entry first. Reads do not change
    eviction order. Every public method takes the same lock, including
    reads, since lazy expiry mutates the store.
    """

    def __init__(self, max_size: int, clock: Callable[[], float] = time.time):
        """
        Initialize memory store

        Args:
            max_size: Capacity in bytes
            clock: Time source in seconds (injectable for tests)
        """
        if max_size < 0:
            raise ValueError("max_size must not be negative")
        self._store: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = Lock()
        self._max_size = max_size
        self._current_size = 0
        self._clock = clock

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def current_size(self) -> int:
        with self._lock:
            return self._current_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def set(self, key: str, value: V, size: int, ttl: Optional[float] = None) -> bool:
        """
        Store a value
        存储条目

        Args:
            key: Lookup key
            value: Payload
            size: Byte size charged against capacity
            ttl: Optional time-to-live in seconds

        Returns:
            False if the item can never fit, True once stored
        """
        if size < 0:
            raise ValueError("size must not be negative")
        if size > self._max_size:
            return False

        with self._lock:
            # At most one entry per key; a re-set moves it to the newest slot
            self._remove(key)

            while self._current_size + size > self._max_size and self._store:
                self._evict_oldest()

            now = self._clock()
            self._store[key] = CacheEntry(
                key=key,
                value=value,
                size_bytes=size,
                created_at=now,
                last_accessed=now,
                expires_at=now + ttl if ttl is not None else None,
            )
            self._current_size += size
            return True

    def get(self, key: str) -> Optional[V]:
        """
        Get a live value
        获取未过期的条目

        Returns:
            The stored value, or None if absent or expired
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            entry.last_accessed = self._clock()
            return entry.value

    def has(self, key: str) -> bool:
        """Same expiry semantics as get(), without returning the payload."""
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        """
        Delete an entry
        删除条目

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            return self._remove(key)

    def clear(self) -> int:
        """
        Clear all entries
        清空所有缓存

        Returns:
            Number of entries deleted
        """
        with self._lock:
            count = len(self._store)
            self._store.clear()
            self._current_size = 0
            return count

    def purge_expired(self) -> int:
        """
        Remove every expired entry
        清理过期条目

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, v in self._store.items() if v.is_expired(now)]
            for k in expired:
                self._remove(k)
            return len(expired)

    def keys(self) -> List[str]:
        """Keys in eviction order, oldest first."""
        with self._lock:
            return list(self._store.keys())

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics
        获取缓存统计信息
        """
        with self._lock:
            return {
                "total_entries": len(self._store),
                "total_size_bytes": self._current_size,
                "max_size_bytes": self._max_size,
                "usage_percent": round(self._current_size / self._max_size * 100, 1) if self._max_size > 0 else 0,
            }

    def _live_entry(self, key: str) -> Optional[CacheEntry[V]]:
        """Lookup with lazy expiry (assumes lock held)"""
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._remove(key)
            return None
        return entry

    def _evict_oldest(self) -> None:
        """Drop the oldest inserted entry (assumes lock held)"""
        _, entry = self._store.popitem(last=False)
        self._current_size -= entry.size_bytes

    def _remove(self, key: str) -> bool:
        """Remove one entry and release its bytes (assumes lock held)"""
        entry = self._store.pop(key, None)
        if entry is None:
            return False
        self._current_size -= entry.size_bytes
        return True
