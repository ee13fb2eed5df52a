"""
Proxy Module

Routes requests to upstream origins by path prefix.

Features:
- First-match prefix routing with path sanitization
- ?raw=true redirects to the unproxied origin
- Streaming forwarding with uniform cache headers
- In-memory caching of large image responses
"""

from .paths import UnsafePathError, match_rule, resolve_target_url, sanitize_path
from .redirect import build_redirect
from .forwarder import ProxyForwarder, UpstreamError
from .routes_fastapi import RequestRouter, create_proxy_router

__all__ = [
    "UnsafePathError",
    "match_rule",
    "resolve_target_url",
    "sanitize_path",
    "build_redirect",
    "ProxyForwarder",
    "UpstreamError",
    "RequestRouter",
    "create_proxy_router",
]
