"""
Path matching and sanitization for proxy rules.
"""

import re
from typing import Optional, Sequence, Tuple
from urllib.parse import quote, urljoin, urlsplit

from settings import ProxyRule

_PIPES = re.compile(r"\|")
_SLASH_RUNS = re.compile(r"/+")
_LEADING_SLASH = re.compile(r"^/")

# Reserved characters that stay literal in a path segment; ? # % are escaped
_PATH_SAFE = "/:@!$&'()*+,;=~"


class UnsafePathError(ValueError):
    """Resolved target URL falls outside the rule's target."""


def match_rule(rules: Sequence[ProxyRule], request_path: str) -> Optional[Tuple[ProxyRule, str]]:
    """
    Find the first rule whose prefix starts the request path.

    Rules are tried in the given order, so longer prefixes must be listed
    before the shorter ones they overlap with.

    Returns:
        (rule, sub_path) with the prefix removed, or None if nothing matches.
    """
    for rule in rules:
        if request_path.startswith(rule.prefix):
            return rule, request_path[len(rule.prefix):]
    return None


def sanitize_path(sub_path: str) -> str:
    """
    Normalize the part of the path left after the prefix.

    Pipes are dropped, runs of slashes collapse to one, and a single
    leading slash is removed. The result is always relative and the
    function is idempotent.
    """
    cleaned = _PIPES.sub("", sub_path)
    cleaned = _SLASH_RUNS.sub("/", cleaned)
    return _LEADING_SLASH.sub("", cleaned, count=1)


def quote_path(sanitized_path: str) -> str:
    """Percent-encode a sanitized path for use inside a URL."""
    return quote(sanitized_path, safe=_PATH_SAFE)


def _base_directory(path: str) -> str:
    return path[: path.rfind("/") + 1] or "/"


def resolve_target_url(rule: ProxyRule, sanitized_path: str) -> str:
    """
    Resolve the sanitized path against the rule target.

    Raises:
        UnsafePathError: if dot segments walk the result out of the
            target's base directory.
    """
    # "./" keeps a leading "name:" segment from parsing as a URL scheme
    resolved = urljoin(rule.target, "./" + quote_path(sanitized_path))

    target = urlsplit(rule.target)
    result = urlsplit(resolved)
    if (
        result.scheme != target.scheme
        or result.netloc != target.netloc
        or not (result.path or "/").startswith(_base_directory(target.path))
    ):
        raise UnsafePathError(f"{sanitized_path!r} escapes target {rule.target}")
    return resolved


def extension_of(url: str) -> str:
    """Lower-cased text after the last dot of the URL path."""
    return urlsplit(url).path.rsplit(".", 1)[-1].lower()
