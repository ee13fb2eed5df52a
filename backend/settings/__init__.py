"""
Settings Module

Service configuration: proxy rules, cache policy and the size/time
literal parsers they are built from.
"""

from .models import CachePolicy, ProxyRule, ServiceConfig, DEFAULT_IMAGE_TYPES
from .loader import load_config
from .units import (
    ConfigError,
    DEFAULT_MAX_AGE,
    NO_CACHE_HEADERS,
    cache_headers,
    format_size,
    parse_size,
    parse_time,
)

__all__ = [
    "CachePolicy",
    "ProxyRule",
    "ServiceConfig",
    "DEFAULT_IMAGE_TYPES",
    "load_config",
    "ConfigError",
    "DEFAULT_MAX_AGE",
    "NO_CACHE_HEADERS",
    "cache_headers",
    "format_size",
    "parse_size",
    "parse_time",
]
