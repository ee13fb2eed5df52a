"""
CDN Proxy 测试配置文件

Shared pytest fixtures:
- FakeClock: manually advanced time source for TTL tests
- cache_policy / rules: the reference configuration used across tests
- MockOrigin: in-process origin server built on httpx.MockTransport
"""

import sys
from pathlib import Path
from typing import Callable, List, Optional

import httpx
import pytest

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from logbuffer import LogBuffer
from proxy import ProxyForwarder
from settings import CachePolicy, ProxyRule, ServiceConfig

MB = 1024 * 1024


# ============================================
# Clock
# ============================================

class FakeClock:
    """Callable time source that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================
# Config Fixtures
# ============================================

@pytest.fixture
def cache_policy():
    """Policy from the reference scenario: 8MB+ png, one day TTL."""
    return CachePolicy.model_validate({
        "enabled": True,
        "maxSize": "64MB",
        "minSize": "8MB",
        "imageTypes": ["png"],
        "maxTime": "86400S",
    })


@pytest.fixture
def rules():
    return [
        ProxyRule(prefix="/img/", target="https://origin.example/"),
        ProxyRule(
            prefix="/gh/",
            target="https://cdn.example/gh/repo@master/",
            rawRedirect="https://mirror.example/gh/repo@master/{path}",
        ),
    ]


@pytest.fixture
def service_config(cache_policy, rules):
    return ServiceConfig(title="Test CDN", proxies=rules, cache=cache_policy)


# ============================================
# Mock Origin
# ============================================

class MockOrigin:
    """
    Records every upstream request and answers with `handler`.

    The default handler returns a 10MB png for *.png paths and a short
    text body for everything else.
    """

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self.handler = handler or self.default_handler

    @staticmethod
    def default_handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(".png"):
            return httpx.Response(200, content=b"\x89PNG" + b"\0" * (10 * MB), headers={"Content-Type": "image/png"})
        return httpx.Response(200, content=b"hello", headers={"Content-Type": "text/plain"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture
def origin():
    return MockOrigin()


@pytest.fixture
def log_buffer():
    return LogBuffer(capacity=500)


@pytest.fixture
def forwarder(origin, log_buffer):
    client = httpx.AsyncClient(transport=httpx.MockTransport(origin), follow_redirects=True)
    return ProxyForwarder(client=client, log=log_buffer)
