"""
Service Configuration Models
服务配置数据模型

包含：
- ProxyRule: 路径前缀 -> 源站 映射
- CachePolicy: 内存图片缓存策略
- ServiceConfig: 完整服务配置 (index_config.json)
"""

from typing import FrozenSet, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .units import DEFAULT_MAX_AGE, parse_size, parse_time

DEFAULT_IMAGE_TYPES = frozenset(
    {"png", "jpg", "jpeg", "gif", "svg", "webp", "bmp", "ico"}
)


class ProxyRule(BaseModel):
    """
    A path-prefix to origin mapping.
    Loaded once at startup and never mutated.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prefix: str = Field(..., min_length=1, description="Literal request path prefix")
    target: str = Field(..., description="Base URL the stripped sub-path is resolved against")
    raw_redirect: Optional[str] = Field(
        None, alias="rawRedirect", description="Redirect template containing {path}"
    )
    visible: bool = True            # Only affects the /list page
    description: Optional[str] = None

    @field_validator("target")
    @classmethod
    def _check_target(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"target must be an absolute http(s) URL, got {value!r}")
        return value


class CachePolicy(BaseModel):
    """
    Cache admission and lifetime thresholds.
    Size and time fields accept "8MB" / "86400S" literals and are stored
    as plain bytes / seconds.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = False
    max_size: int = Field(1024 * 1024 * 1024, alias="maxSize")     # Whole-cache capacity
    min_size: int = Field(8 * 1024 * 1024, alias="minSize")        # Smallest cacheable body
    image_types: FrozenSet[str] = Field(DEFAULT_IMAGE_TYPES, alias="imageTypes")
    max_time: Optional[int] = Field(None, alias="maxTime")         # Entry TTL in seconds

    @field_validator("max_size", "min_size", mode="before")
    @classmethod
    def _parse_size(cls, value):
        return parse_size(value)

    @field_validator("max_time", mode="before")
    @classmethod
    def _parse_time(cls, value):
        if value is None:
            return None
        return parse_time(value)

    @field_validator("image_types", mode="before")
    @classmethod
    def _normalize_types(cls, value):
        if isinstance(value, str):
            value = [value]
        return frozenset(str(ext).strip().lstrip(".").lower() for ext in value)

    @property
    def max_age(self) -> int:
        """Client-facing cache lifetime in seconds."""
        return self.max_time if self.max_time is not None else DEFAULT_MAX_AGE


class ServiceConfig(BaseModel):
    """Full service configuration as stored in index_config.json."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = "CDN Proxy"
    description: str = "Multi-origin CDN proxy"
    footer: str = ""
    establish_time: Optional[str] = Field(None, alias="establishTime")
    proxies: List[ProxyRule] = Field(default_factory=list)
    cache: CachePolicy = Field(default_factory=CachePolicy)
    sort_by_prefix_length: bool = Field(False, alias="sortByPrefixLength")

    def ordered_rules(self) -> List[ProxyRule]:
        """
        Rules in matching order.

        Config order is authoritative; descending prefix length is applied
        only when sortByPrefixLength is switched on.
        """
        if self.sort_by_prefix_length:
            return sorted(self.proxies, key=lambda rule: len(rule.prefix), reverse=True)
        return list(self.proxies)
