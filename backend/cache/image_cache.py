"""
Image Cache Manager

In-memory cache for proxied images with:
- Admission policy (allowed extensions, minimum body size)
- Byte-bounded capacity with insertion-order eviction
- Optional TTL from the cache policy
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from settings import CachePolicy, format_size

from .memory_store import BoundedCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedImage:
    """Payload stored for one proxied response."""
    data: bytes
    content_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def is_cacheable(extension: Optional[str], byte_length: int, policy: CachePolicy) -> bool:
    """
    Decide whether a response is worth caching.

    Only large bodies of an allowed image type qualify; small or
    non-image payloads are served straight through.
    """
    if not extension:
        return False
    ext = extension.lstrip(".").lower()
    return ext in policy.image_types and byte_length >= policy.min_size


class ImageCache:
    """
    Caches image responses keyed by the inbound request path.

    Cache structure:
    BoundedCache[str, CachedImage]
    ├── "/img/a.png" -> CachedImage(data, content_type)
    └── ...
    """

    def __init__(
        self,
        policy: CachePolicy,
        store: Optional[BoundedCache[CachedImage]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy
        self.store = store if store is not None else BoundedCache(policy.max_size, clock=clock)

    @property
    def enabled(self) -> bool:
        return self.policy.enabled

    def is_cacheable(self, extension: Optional[str], byte_length: int) -> bool:
        return is_cacheable(extension, byte_length, self.policy)

    def get(self, key: str) -> Optional[CachedImage]:
        """
        Get cached image by request path.

        Returns:
            CachedImage if cached and not expired, None otherwise.
        """
        cached = self.store.get(key)
        if cached is not None:
            logger.debug(f"[ImageCache] Cache hit: {key} ({format_size(cached.size_bytes)})")
        return cached

    def put(self, key: str, data: bytes, content_type: str) -> bool:
        """
        Cache an image.

        The bytes are copied so later mutation by the caller cannot leak
        into the stored entry.

        Returns:
            True if cached, False if the image exceeds the whole capacity.
        """
        image = CachedImage(data=bytes(data), content_type=content_type)
        stored = self.store.set(key, image, image.size_bytes, self.policy.max_time)
        if stored:
            logger.debug(f"[ImageCache] Cached: {key} ({format_size(image.size_bytes)})")
        return stored

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        removed = self.store.purge_expired()
        if removed:
            logger.info(f"[ImageCache] Cleaned up {removed} expired entries")
        return removed

    def clear_all(self) -> int:
        """
        Clear all cached images.

        Returns:
            Number of entries removed.
        """
        count = self.store.clear()
        logger.info(f"[ImageCache] Cleared all {count} entries")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        stats = self.store.stats()
        return {
            **stats,
            "enabled": self.policy.enabled,
            "total_size": format_size(stats["total_size_bytes"]),
            "max_size": format_size(stats["max_size_bytes"]),
            "min_cacheable_size": format_size(self.policy.min_size),
            "cache_ttl_seconds": self.policy.max_time,
            "image_types": sorted(self.policy.image_types),
        }
