"""
Proxy API Routes

Catch-all route that fans requests out to the configured origins:
1. Match the request path against the proxy rules
2. Sanitize the remaining sub-path
3. ?raw=true -> 302 to the unproxied origin URL
4. Serve from the image cache when possible
5. Otherwise forward upstream, caching qualifying images
"""

import logging
from typing import List, Sequence, Tuple

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from cache import CachedImage, ImageCache
from logbuffer import LogBuffer
from settings import NO_CACHE_HEADERS, ProxyRule, cache_headers, format_size

from .forwarder import (
    ProxyForwarder,
    UpstreamError,
    build_response_headers,
    normalize_content_type,
)
from .paths import UnsafePathError, extension_of, match_rule, resolve_target_url, sanitize_path
from .redirect import RAW_PARAM, build_redirect

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Only plain reads are served from or stored into the cache
CACHE_METHODS = {"GET"}


def _with_headers(response: Response, header_items: Sequence[Tuple[str, str]]) -> Response:
    # append keeps repeated origin headers such as Set-Cookie
    for name, value in header_items:
        response.headers.append(name, value)
    return response


class RequestRouter:
    """
    Per-request orchestration: MATCH -> SANITIZE -> REDIRECT | CACHE_HIT | FORWARD.

    Every failure is turned into an HTTP response here; nothing raised by
    the forwarder or the path helpers escapes handle().
    """

    def __init__(
        self,
        rules: Sequence[ProxyRule],
        image_cache: ImageCache,
        forwarder: ProxyForwarder,
        log: LogBuffer,
    ):
        self.rules: List[ProxyRule] = list(rules)
        self.image_cache = image_cache
        self.forwarder = forwarder
        self.log = log
        self.cache_headers = cache_headers(image_cache.policy.max_age)

    async def handle(self, request: Request) -> Response:
        path = request.url.path
        method = request.method.upper()
        self.log.info("[Proxy] Request", method=method, path=path)

        matched = match_rule(self.rules, path)
        if matched is None:
            return PlainTextResponse("Not Found", status_code=404)
        rule, sub_path = matched

        sanitized = sanitize_path(sub_path)
        try:
            target_url = resolve_target_url(rule, sanitized)
        except UnsafePathError as e:
            self.log.warning("[Proxy] Rejected unsafe path", path=path, reason=str(e))
            return PlainTextResponse("Bad Request", status_code=400)

        query_items = request.query_params.multi_items()

        if "true" in request.query_params.getlist(RAW_PARAM):
            location = build_redirect(rule, sanitized, query_items)
            self.log.info("[Proxy] Raw redirect", path=path, location=location)
            return Response(status_code=302, headers={"Location": location, **NO_CACHE_HEADERS})

        use_cache = self.image_cache.enabled and method in CACHE_METHODS
        if use_cache:
            cached = self.image_cache.get(path)
            if cached is not None:
                self.log.info("[Cache] Hit", path=path, size=format_size(cached.size_bytes))
                return self._cached_response(cached)

        body = await request.body() if method not in ("GET", "HEAD") else None
        try:
            upstream = await self.forwarder.forward(
                rule,
                sanitized,
                method,
                request.headers.items(),
                body,
                query_items,
            )
        except UpstreamError:
            return self._bad_gateway()

        if not upstream.is_success:
            return await self._relay_error(upstream, path)

        header_items = build_response_headers(upstream.headers, self.cache_headers)
        extension = extension_of(target_url)

        # Only candidate image types are buffered; everything else streams
        if use_cache and extension in self.image_cache.policy.image_types:
            try:
                data = await self.forwarder.read_body(upstream)
            except UpstreamError:
                return self._bad_gateway()

            if self.image_cache.is_cacheable(extension, len(data)):
                content_type = normalize_content_type(upstream.headers.get("content-type"))
                if self.image_cache.put(path, data, content_type):
                    self.log.info("[Cache] Stored", path=path, size=format_size(len(data)))

            response = Response(content=data, status_code=upstream.status_code)
            response.headers["X-Cache"] = "MISS"
            return _with_headers(response, header_items)

        response = StreamingResponse(
            self.forwarder.stream_body(upstream),
            status_code=upstream.status_code,
        )
        if self.image_cache.enabled:
            response.headers["X-Cache"] = "MISS"
        return _with_headers(response, header_items)

    def _cached_response(self, cached: CachedImage) -> Response:
        return Response(
            content=cached.data,
            status_code=200,
            headers={
                **self.cache_headers,
                "Content-Type": cached.content_type,
                "X-Cache": "HIT",
            },
        )

    def _bad_gateway(self) -> Response:
        return PlainTextResponse(
            "Bad Gateway",
            status_code=502,
            headers={**self.cache_headers, "Content-Type": "text/plain; charset=utf-8"},
        )

    async def _relay_error(self, upstream, path: str) -> Response:
        """Pass a non-2xx origin response through untouched and uncached."""
        self.log.warning("[Proxy] Upstream returned error status", path=path, status=upstream.status_code)
        try:
            data = await self.forwarder.read_body(upstream)
        except UpstreamError:
            return self._bad_gateway()

        headers = {}
        if "content-type" in upstream.headers:
            headers["Content-Type"] = upstream.headers["content-type"]
        return Response(content=data, status_code=upstream.status_code, headers=headers)


def create_proxy_router(request_router: RequestRouter) -> APIRouter:
    """Catch-all router; must be included after every other route."""
    router = APIRouter(tags=["Proxy"])

    @router.api_route("/{path:path}", methods=PROXY_METHODS)
    async def proxy_all(request: Request, path: str):
        """Route any remaining request through the proxy rules."""
        return await request_router.handle(request)

    return router
