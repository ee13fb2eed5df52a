"""
Cache API Routes
缓存 API 路由

Provides HTTP endpoints for cache administration:
- GET    /api/cache/stats    - Get cache statistics
- POST   /api/cache/cleanup  - Remove expired entries
- DELETE /api/cache/clear    - Drop every cached image
"""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from .image_cache import ImageCache


# ============================================
# Response Models
# ============================================

class CacheStatsResponse(BaseModel):
    """Response model for stats endpoint"""
    enabled: bool
    total_entries: int
    total_size_bytes: int
    max_size_bytes: int
    usage_percent: float
    total_size: str
    max_size: str
    min_cacheable_size: str
    cache_ttl_seconds: Optional[int]
    image_types: List[str]

class CacheCleanupResponse(BaseModel):
    """Response model for cleanup / clear operations"""
    success: bool
    removed_entries: int
    message: str


# ============================================
# API Endpoints
# ============================================

def create_cache_router(image_cache: ImageCache) -> APIRouter:
    """Build the admin router bound to one ImageCache instance."""
    router = APIRouter(prefix="/api/cache", tags=["cache"])

    @router.get("/stats", response_model=CacheStatsResponse)
    async def get_cache_stats():
        """
        Get cache statistics
        获取缓存统计信息
        """
        return CacheStatsResponse(**image_cache.get_stats())

    @router.post("/cleanup", response_model=CacheCleanupResponse)
    async def cleanup_cache():
        """
        Clean up expired cache entries.

        Expired entries are also dropped lazily on read,
        this just reclaims their memory early.
        """
        removed = image_cache.cleanup_expired()
        return CacheCleanupResponse(
            success=True,
            removed_entries=removed,
            message=f"Removed {removed} expired entries",
        )

    @router.delete("/clear", response_model=CacheCleanupResponse)
    async def clear_cache():
        """
        Clear all cached images
        清空所有缓存
        """
        removed = image_cache.clear_all()
        return CacheCleanupResponse(
            success=True,
            removed_entries=removed,
            message="Cache cleared successfully",
        )

    return router
