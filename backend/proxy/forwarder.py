"""
Upstream forwarding.

Sends the inbound request to the origin resolved from a proxy rule and
hands back the streamed httpx response. Header rewriting for both
directions lives here as well.
"""

import logging
import os
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

import httpx

from logbuffer import LogBuffer
from settings import ProxyRule

from .paths import resolve_target_url
from .redirect import append_query

logger = logging.getLogger(__name__)

UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "30"))

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# httpx negotiates and decodes its own content encodings
REQUEST_HEADERS_DROPPED = HOP_BY_HOP_HEADERS | {"host", "accept-encoding"}

# Bodies are re-emitted decoded; cache and type headers are set by the proxy
RESPONSE_HEADERS_DROPPED = HOP_BY_HOP_HEADERS | {
    "content-length",
    "content-encoding",
    "content-type",
    "cache-control",
    "cdn-cache-control",
}

BODYLESS_METHODS = {"GET", "HEAD"}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class UpstreamError(Exception):
    """The origin could not be reached or its body could not be read."""

    def __init__(self, method: str, url: str, cause: Exception):
        super().__init__(f"{method} {url} failed: {cause!r}")
        self.method = method
        self.url = url
        self.cause = cause


def prepare_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Inbound request headers minus Host and hop-by-hop headers."""
    return [
        (name, value)
        for name, value in headers
        if name.lower() not in REQUEST_HEADERS_DROPPED
    ]


def normalize_content_type(content_type: Optional[str]) -> str:
    """Append `; charset=utf-8` unless a charset is already declared."""
    content_type = content_type or DEFAULT_CONTENT_TYPE
    if "charset" in content_type.lower():
        return content_type
    return f"{content_type}; charset=utf-8"


def build_response_headers(
    upstream_headers: httpx.Headers,
    cache_headers: Dict[str, str],
) -> List[Tuple[str, str]]:
    """
    Headers for the client response.

    Origin headers are copied, then Content-Type is normalized and the
    proxy's cache directives replace whatever the origin sent.
    """
    items = [
        (name, value)
        for name, value in upstream_headers.multi_items()
        if name.lower() not in RESPONSE_HEADERS_DROPPED
    ]
    items.append(("Content-Type", normalize_content_type(upstream_headers.get("content-type"))))
    items.extend(cache_headers.items())
    return items


class ProxyForwarder:
    """
    Forwards requests to origins with a shared httpx client.

    Usage:
        forwarder = ProxyForwarder(log=log_buffer)
        response = await forwarder.forward(rule, "img/a.png", "GET", headers)
        body = await forwarder.read_body(response)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = UPSTREAM_TIMEOUT,
        log: Optional[LogBuffer] = None,
    ):
        self.client = client if client is not None else httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )
        self.log = log if log is not None else LogBuffer()

    async def forward(
        self,
        rule: ProxyRule,
        sanitized_path: str,
        method: str,
        headers: Iterable[Tuple[str, str]],
        body: Optional[bytes] = None,
        query_items: Iterable[Tuple[str, str]] = (),
    ) -> httpx.Response:
        """
        Send the request upstream and return the response in streaming mode.

        The caller owns the returned response and must consume it with
        read_body() or stream_body(), both of which close it.

        Raises:
            UpstreamError: on DNS, connect, TLS, timeout or protocol failure.
        """
        url = append_query(resolve_target_url(rule, sanitized_path), query_items)
        method = method.upper()
        content = body if method not in BODYLESS_METHODS else None

        try:
            request = self.client.build_request(
                method,
                url,
                headers=prepare_headers(headers),
                content=content,
            )
            response = await self.client.send(request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.log.error("[Proxy] Upstream request failed", method=method, url=url, error=repr(e))
            raise UpstreamError(method, url, e) from e

        logger.debug(f"[Proxy] {method} {url} -> {response.status_code}")
        return response

    async def read_body(self, response: httpx.Response) -> bytes:
        """
        Buffer the full upstream body and close the response.

        Raises:
            UpstreamError: if the connection fails mid-body.
        """
        try:
            return await response.aread()
        except httpx.HTTPError as e:
            method, url = response.request.method, str(response.request.url)
            self.log.error("[Proxy] Upstream body read failed", method=method, url=url, error=repr(e))
            raise UpstreamError(method, url, e) from e
        finally:
            await response.aclose()

    async def stream_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        """Relay the upstream body chunk by chunk, closing it when done."""
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            # Headers are already out; the server aborts the connection
            self.log.error(
                "[Proxy] Upstream stream interrupted",
                method=response.request.method,
                url=str(response.request.url),
                error=repr(e),
            )
            raise
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()
