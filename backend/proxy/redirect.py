"""
Raw redirect URLs (?raw=true).
"""

from typing import Iterable, Tuple
from urllib.parse import urlencode

from settings import ProxyRule

from .paths import quote_path, resolve_target_url

RAW_PARAM = "raw"
PATH_PLACEHOLDER = "{path}"


def append_query(url: str, query_items: Iterable[Tuple[str, str]]) -> str:
    """Append query pairs, joining with & when the URL already has a query."""
    params = urlencode(list(query_items))
    if not params:
        return url
    return url + ("&" if "?" in url else "?") + params


def build_redirect(
    rule: ProxyRule,
    sanitized_path: str,
    query_items: Iterable[Tuple[str, str]],
) -> str:
    """
    Build the unproxied origin URL for a raw redirect.

    Uses the rule's rawRedirect template when set (only the first {path}
    is substituted), otherwise the resolved target URL. Inbound query
    parameters other than `raw` are carried over.
    """
    if rule.raw_redirect:
        url = rule.raw_redirect.replace(PATH_PLACEHOLDER, quote_path(sanitized_path), 1)
    else:
        url = resolve_target_url(rule, sanitized_path)

    return append_query(url, ((k, v) for k, v in query_items if k != RAW_PARAM))
