"""
CDN Proxy Service Entry Point

Wires config, cache, forwarder and routes into one FastAPI app.

Usage:
    cd backend
    CDN_PROXY_CONFIG=index_config.json python main.py
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI

from cache import ImageCache, create_cache_router
from logbuffer import LogBuffer
from pages import Statics, create_pages_router, load_statics
from proxy import ProxyForwarder, RequestRouter, create_proxy_router
from settings import ServiceConfig, load_config

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).parent

# ============================================
# Configuration
# ============================================

CONFIG_FILE = os.getenv("CDN_PROXY_CONFIG", str(BACKEND_DIR / "index_config.json"))
PUBLIC_DIR = os.getenv("CDN_PROXY_PUBLIC_DIR", str(BACKEND_DIR / "public"))
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

FALLBACK_CONFIG = ServiceConfig(
    title="CDN Proxy",
    description="High-performance multi-origin CDN proxy",
    footer="CDN proxy service",
)


def startup_banner(config: ServiceConfig, started_at: float) -> str:
    """Multi-line summary of the active rules."""
    lines = [f"Service started (cache max-age {config.cache.max_age}s)", "├ Proxy rules:"]
    for rule in config.ordered_rules():
        lines.append(f"│   {rule.prefix} → {rule.target}")
        lines.append(f"│      redirect template: {rule.raw_redirect or 'auto'}")
    lines.append(f"└ Started at: {datetime.fromtimestamp(started_at).isoformat(sep=' ', timespec='seconds')}")
    return "\n".join(lines)


def create_app(
    config: ServiceConfig,
    statics: Optional[Statics] = None,
    forwarder: Optional[ProxyForwarder] = None,
    log: Optional[LogBuffer] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """
    Build the application.

    Site and cache admin routes are registered first; the proxy
    catch-all goes last so it never shadows them.
    """
    log = log if log is not None else LogBuffer()
    statics = statics if statics is not None else Statics()
    forwarder = forwarder if forwarder is not None else ProxyForwarder(log=log)
    image_cache = ImageCache(config.cache, clock=clock)
    started_at = clock()

    request_router = RequestRouter(
        rules=config.ordered_rules(),
        image_cache=image_cache,
        forwarder=forwarder,
        log=log,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for line in startup_banner(config, started_at).splitlines():
            log.info(line)
        yield
        await forwarder.aclose()

    app = FastAPI(title=config.title, description=config.description, lifespan=lifespan)
    app.state.image_cache = image_cache
    app.state.log = log

    app.include_router(create_pages_router(config, statics, image_cache, log, started_at, clock=clock))
    app.include_router(create_cache_router(image_cache))
    app.include_router(create_proxy_router(request_router))
    return app


def run() -> None:
    """Load config from the environment and serve with uvicorn."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(CONFIG_FILE, fallback=FALLBACK_CONFIG)
    app = create_app(config, statics=load_statics(PUBLIC_DIR))
    logger.info(f"[Server] Listening on {HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
