"""
Site Pages Routes

Provides endpoints for:
- GET /             - Homepage
- GET /favicon.ico  - Site icon
- GET /list         - Visible proxy rules (HTML, or JSON with ?format=json)
- GET /logs         - Rolling in-memory log
"""

import html
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response

from cache import ImageCache
from logbuffer import LogBuffer
from settings import ServiceConfig, cache_headers

from .static_loader import Statics

LIST_ENDPOINT = "/list"


def format_duration(seconds: float) -> str:
    """Render elapsed seconds as e.g. "3d 4h 12m"."""
    total_minutes = max(int(seconds), 0) // 60
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    return f"{hours}h {minutes}m"


def format_establish_time(establish_time: Optional[str]) -> str:
    """Display form of the configured establish date."""
    if not establish_time:
        return "Not set"
    try:
        return datetime.fromisoformat(establish_time).strftime("%Y-%m-%d")
    except ValueError:
        return establish_time


def _site_uptime(establish_time: Optional[str], now: float) -> str:
    if not establish_time:
        return "Unknown"
    try:
        established = datetime.fromisoformat(establish_time).timestamp()
    except ValueError:
        return "Unknown"
    return format_duration(now - established)


def _base_url(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}"


def _render_rule_rows(config: ServiceConfig, base_url: str) -> str:
    rows = []
    for rule in config.proxies:
        if not rule.visible:
            continue
        proxy_url = html.escape(f"{base_url}{rule.prefix}")
        rows.append(
            "<tr>"
            f"<td>{html.escape(rule.prefix)}</td>"
            f"<td>{html.escape(rule.target)}</td>"
            f"<td>{html.escape(rule.description or 'No description')}</td>"
            f"<td>{html.escape(rule.raw_redirect or 'auto')}</td>"
            f'<td><button class="copy-btn" data-url="{proxy_url}">Copy proxy URL</button></td>'
            "</tr>"
        )
    return "\n".join(rows)


def create_pages_router(
    config: ServiceConfig,
    statics: Statics,
    image_cache: ImageCache,
    log: LogBuffer,
    started_at: float,
    clock: Callable[[], float] = time.time,
) -> APIRouter:
    """Build the site routes; register before the proxy catch-all."""
    router = APIRouter(tags=["Pages"])
    max_age = config.cache.max_age
    headers = cache_headers(max_age)
    cache_days = round(max_age / 86400)

    @router.get("/")
    async def homepage():
        if statics.homepage is None:
            return PlainTextResponse("Service Unavailable", status_code=503)
        return HTMLResponse(statics.homepage, headers=headers)

    @router.get("/favicon.ico")
    async def favicon():
        if statics.favicon is None:
            return PlainTextResponse("Not Found", status_code=404)
        return Response(content=statics.favicon, media_type="image/x-icon", headers=headers)

    @router.get(LIST_ENDPOINT)
    async def list_rules(request: Request, format: Optional[str] = None):
        """
        Visible proxy rules.

        ?format=json returns service info, cache stats and usage examples;
        otherwise the list.html template is rendered.
        """
        now = clock()
        base_url = _base_url(request)
        visible = [rule for rule in config.proxies if rule.visible]

        if format == "json":
            rules: List[Dict[str, Any]] = [
                {
                    "prefix": rule.prefix,
                    "target": rule.target,
                    "description": rule.description or "No description",
                    "redirect_template": rule.raw_redirect or "Uses target URL",
                    "examples": {
                        "proxy": f"{base_url}{rule.prefix}",
                        "raw_redirect": f"{base_url}{rule.prefix}?raw=true",
                    },
                }
                for rule in visible
            ]
            return JSONResponse(
                content={
                    "status": "running",
                    "uptime": format_duration(now - started_at),
                    "site_age": _site_uptime(config.establish_time, now),
                    "establish_time": format_establish_time(config.establish_time),
                    "cache_days": cache_days,
                    "service": {
                        "title": config.title,
                        "description": config.description,
                        "footer": config.footer,
                    },
                    "cache": image_cache.get_stats(),
                    "proxies": rules,
                },
                headers=headers,
            )

        if statics.list_template is None:
            return PlainTextResponse("Configuration UI not available", status_code=503)

        replacements = {
            "{{TITLE}}": html.escape(config.title),
            "{{DESCRIPTION}}": html.escape(config.description),
            "{{FOOTER}}": html.escape(config.footer),
            "{{ESTABLISH_TIME}}": html.escape(format_establish_time(config.establish_time)),
            "{{UPTIME}}": format_duration(now - started_at),
            "{{CACHE_DAYS}}": str(cache_days),
            "{{PROXY_LIST}}": _render_rule_rows(config, base_url),
            "{{CONFIG_ENDPOINT}}": f"{LIST_ENDPOINT}?format=json",
            "{{VISIBLE_COUNT}}": str(len(visible)),
            "{{TOTAL_COUNT}}": str(len(config.proxies)),
        }
        page = statics.list_template
        for placeholder, value in replacements.items():
            page = page.replace(placeholder, value)
        return HTMLResponse(page, headers=headers)

    @router.get("/logs")
    async def logs():
        return PlainTextResponse(log.render())

    return router
