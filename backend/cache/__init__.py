"""
Memory Cache Module
内存缓存模块

Byte-bounded in-memory storage for proxied images.
"""

from .memory_store import BoundedCache, CacheEntry
from .image_cache import CachedImage, ImageCache, is_cacheable
from .routes import create_cache_router

__all__ = [
    "BoundedCache",
    "CacheEntry",
    "CachedImage",
    "ImageCache",
    "is_cacheable",
    "create_cache_router",
]
