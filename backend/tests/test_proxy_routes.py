"""
Proxy routing end-to-end tests

Drives the full FastAPI app through TestClient with a mock origin:
- 404 for unmatched paths
- ?raw=true redirects
- cache hit / miss / expiry
- non-2xx passthrough and 502 on transport failure
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import MB, FakeClock, MockOrigin
from logbuffer import LogBuffer
from main import create_app
from proxy import ProxyForwarder
from settings import CachePolicy, ProxyRule, ServiceConfig


def _client(config: ServiceConfig, origin: MockOrigin, clock=None, log=None) -> TestClient:
    log = log if log is not None else LogBuffer()
    forwarder = ProxyForwarder(
        client=httpx.AsyncClient(transport=httpx.MockTransport(origin), follow_redirects=True),
        log=log,
    )
    app = create_app(config, forwarder=forwarder, log=log, clock=clock or FakeClock())
    return TestClient(app)


def _png(size: int):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"\x89PNG" + b"\0" * (size - 4), headers={"Content-Type": "image/png"})
    return handler


# ============================================
# 1. 路由匹配
# ============================================

class TestRouting:

    def test_unmatched_path_is_404(self, service_config, origin):
        with _client(service_config, origin) as client:
            response = client.get("/unknown/a.png")

        assert response.status_code == 404
        assert response.text == "Not Found"
        assert origin.call_count == 0

    def test_prefix_stripped_before_forwarding(self, service_config, origin):
        with _client(service_config, origin) as client:
            client.get("/gh/docs/readme.txt")

        assert str(origin.requests[0].url) == "https://cdn.example/gh/repo@master/docs/readme.txt"

    def test_repeated_slashes_collapsed(self, service_config, origin):
        with _client(service_config, origin) as client:
            client.get("/img//a//b.txt")

        assert str(origin.requests[0].url) == "https://origin.example/a/b.txt"

    def test_query_forwarded(self, service_config, origin):
        with _client(service_config, origin) as client:
            client.get("/img/a.txt", params={"w": "100", "raw": "false"})

        assert origin.requests[0].url.params["w"] == "100"
        assert origin.requests[0].url.params["raw"] == "false"

    def test_post_body_forwarded(self, service_config, origin):
        with _client(service_config, origin) as client:
            response = client.post("/img/upload", content=b"payload")

        assert response.status_code == 200
        assert origin.requests[0].method == "POST"
        assert origin.requests[0].content == b"payload"


# ============================================
# 2. Raw 重定向
# ============================================

class TestRawRedirect:

    def test_redirect_uses_template(self, service_config, origin):
        with _client(service_config, origin) as client:
            response = client.get("/gh/img/a.png?raw=true&v=2", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://mirror.example/gh/repo@master/img/a.png?v=2"
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert origin.call_count == 0

    def test_redirect_falls_back_to_target(self, service_config, origin):
        with _client(service_config, origin) as client:
            response = client.get("/img/x/a.png?raw=true", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://origin.example/x/a.png"

    def test_redirect_skips_cache(self, service_config, origin):
        with _client(service_config, origin) as client:
            client.get("/img/a.png")
            response = client.get("/img/a.png?raw=true", follow_redirects=False)

        assert response.status_code == 302
        assert "x-cache" not in response.headers

    def test_other_raw_values_are_proxied(self, service_config, origin):
        with _client(service_config, origin) as client:
            response = client.get("/img/a.txt?raw=1", follow_redirects=False)

        assert response.status_code == 200
        assert origin.call_count == 1

    @pytest.mark.parametrize("query", ["raw=false&raw=true", "raw=true&raw=false"])
    def test_repeated_raw_param_redirects(self, service_config, origin, query):
        with _client(service_config, origin) as client:
            response = client.get(f"/img/a.png?{query}", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://origin.example/a.png"
        assert origin.call_count == 0


# ============================================
# 3. 缓存
# ============================================

class TestCaching:

    def test_end_to_end_hit_and_expiry(self, service_config, origin):
        clock = FakeClock()
        with _client(service_config, origin, clock=clock) as client:
            first = client.get("/img/a.png")
            assert first.status_code == 200
            assert first.headers["x-cache"] == "MISS"
            assert len(first.content) == 10 * MB + 4
            assert origin.call_count == 1

            clock.advance(3600)
            second = client.get("/img/a.png")
            assert second.status_code == 200
            assert second.headers["x-cache"] == "HIT"
            assert second.content == first.content
            assert origin.call_count == 1

            clock.advance(86400)
            third = client.get("/img/a.png")
            assert third.status_code == 200
            assert third.headers["x-cache"] == "MISS"
            assert origin.call_count == 2

    def test_hit_and_miss_share_headers(self, service_config, origin):
        with _client(service_config, origin) as client:
            miss = client.get("/img/a.png")
            hit = client.get("/img/a.png")

        for response in (miss, hit):
            assert response.headers["content-type"] == "image/png; charset=utf-8"
            assert response.headers["cache-control"] == "public, max-age=86400"
            assert response.headers["cdn-cache-control"] == "max-age=86400"

    def test_cache_key_is_full_request_path(self, service_config, origin):
        config = service_config
        with _client(config, origin) as client:
            client.get("/img/a.png")
            keys = client.app.state.image_cache.store.keys()

        assert keys == ["/img/a.png"]

    def test_query_string_not_part_of_key(self, service_config, origin):
        with _client(service_config, origin) as client:
            client.get("/img/a.png?v=1")
            response = client.get("/img/a.png?v=2")

        assert response.headers["x-cache"] == "HIT"
        assert origin.call_count == 1

    def test_small_image_not_cached(self, service_config):
        origin = MockOrigin(_png(1024))
        with _client(service_config, origin) as client:
            client.get("/img/small.png")
            response = client.get("/img/small.png")

        assert response.headers["x-cache"] == "MISS"
        assert origin.call_count == 2

    def test_non_image_streamed_and_not_cached(self, service_config, origin):
        with _client(service_config, origin) as client:
            first = client.get("/img/readme.txt")
            second = client.get("/img/readme.txt")

        assert first.text == second.text == "hello"
        assert first.headers["content-type"] == "text/plain; charset=utf-8"
        assert origin.call_count == 2

    @pytest.mark.slow
    def test_image_larger_than_capacity_still_served(self, rules):
        config = ServiceConfig(
            proxies=rules,
            cache=CachePolicy(enabled=True, maxSize="9MB", minSize="8MB", imageTypes=["png"]),
        )
        origin = MockOrigin()
        with _client(config, origin) as client:
            first = client.get("/img/a.png")
            second = client.get("/img/a.png")
            size = client.app.state.image_cache.store.current_size

        assert first.status_code == second.status_code == 200
        assert origin.call_count == 2
        assert size == 0

    def test_cache_disabled_always_forwards(self, rules):
        config = ServiceConfig(proxies=rules, cache=CachePolicy(enabled=False))
        origin = MockOrigin()
        with _client(config, origin) as client:
            client.get("/img/a.png")
            response = client.get("/img/a.png")

        assert response.status_code == 200
        assert "x-cache" not in response.headers
        assert origin.call_count == 2

    def test_post_never_cached(self, service_config, origin):
        with _client(service_config, origin) as client:
            client.post("/img/a.png", content=b"x")
            client.post("/img/a.png", content=b"x")
            size = client.app.state.image_cache.store.current_size

        assert origin.call_count == 2
        assert size == 0

    def test_origin_cache_directives_overridden(self, service_config):
        origin = MockOrigin(lambda request: httpx.Response(
            200,
            content=b"body",
            headers={"Content-Type": "text/css; charset=utf-8", "Cache-Control": "no-store"},
        ))
        with _client(service_config, origin) as client:
            response = client.get("/img/site.css")

        assert response.headers["cache-control"] == "public, max-age=86400"
        assert response.headers["content-type"] == "text/css; charset=utf-8"


# ============================================
# 4. 错误处理
# ============================================

class TestErrors:

    def test_upstream_error_status_relayed_not_cached(self, service_config):
        origin = MockOrigin(lambda request: httpx.Response(
            404, content=b"missing", headers={"Content-Type": "text/plain"},
        ))
        with _client(service_config, origin) as client:
            first = client.get("/img/a.png")
            second = client.get("/img/a.png")
            size = client.app.state.image_cache.store.current_size

        assert first.status_code == second.status_code == 404
        assert first.text == "missing"
        assert origin.call_count == 2
        assert size == 0

    def test_upstream_server_error_relayed(self, service_config):
        origin = MockOrigin(lambda request: httpx.Response(503, content=b"down"))
        with _client(service_config, origin) as client:
            response = client.get("/img/a.txt")

        assert response.status_code == 503
        assert response.text == "down"

    def test_connect_error_is_502(self, service_config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        log = LogBuffer()
        with _client(service_config, MockOrigin(refuse), log=log) as client:
            response = client.get("/img/a.png")
            size = client.app.state.image_cache.store.current_size

        assert response.status_code == 502
        assert response.text == "Bad Gateway"
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.headers["cache-control"] == "public, max-age=86400"
        assert size == 0
        assert any(entry.level == "ERROR" for entry in log.entries())

    def test_timeout_is_502(self, service_config):
        def slow(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with _client(service_config, MockOrigin(slow)) as client:
            response = client.get("/img/a.txt")

        assert response.status_code == 502

    @pytest.mark.parametrize("path", ["/img/a.png", "/img/a.txt"])
    def test_failure_does_not_poison_cache(self, service_config, path):
        calls = {"n": 0}

        def flaky(request):
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("refused", request=request)
            return MockOrigin.default_handler(request)

        with _client(service_config, MockOrigin(flaky)) as client:
            assert client.get(path).status_code == 502
            assert client.get(path).status_code == 200

    def test_default_forwarder_logs_to_app_buffer(self):
        config = ServiceConfig(proxies=[ProxyRule(prefix="/img/", target="http://127.0.0.1:1/")])
        with TestClient(create_app(config)) as client:
            response = client.get("/img/a.png")
            logs = client.get("/logs").text

        assert response.status_code == 502
        assert "[ERROR] [Proxy] Upstream request failed" in logs
        assert "url=http://127.0.0.1:1/a.png" in logs
