"""
Size / Time Literals
尺寸与时间字面量

Parses the "8MB" / "86400S" literals used in the service config and
builds the cache headers derived from them.
"""

import re
from typing import Dict, Union

_SIZE_PATTERN = re.compile(r"^(\d+)(MB|KB|B)$", re.IGNORECASE)
_TIME_PATTERN = re.compile(r"^(\d+)S$", re.IGNORECASE)

_SIZE_MULTIPLIERS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
}

# Seconds in one day; used when the config sets no maxTime
DEFAULT_MAX_AGE = 86400

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
}


class ConfigError(ValueError):
    """Raised when the service configuration is malformed."""


def parse_size(value: Union[int, str]) -> int:
    """
    Parse a byte-size literal such as "8MB", "1024KB" or "1048576B".

    Raises:
        ConfigError: if the literal is not in a supported format.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigError(f"Size must not be negative: {value}")
        return value

    match = _SIZE_PATTERN.match(str(value).strip())
    if not match:
        raise ConfigError(
            f'Invalid size format {value!r}. Use format like "8MB", "1024KB" or "1048576B"'
        )
    amount, unit = match.groups()
    return int(amount) * _SIZE_MULTIPLIERS[unit.upper()]


def parse_time(value: Union[int, str]) -> int:
    """
    Parse a duration literal such as "86400S" into seconds.

    Raises:
        ConfigError: if the literal is not in a supported format.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid time: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigError(f"Time must not be negative: {value}")
        return value

    match = _TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ConfigError(f'Invalid time format {value!r}. Use format like "86400S"')
    return int(match.group(1))


def format_size(num_bytes: int) -> str:
    """Render a byte count as e.g. "10.00MB"."""
    units = ["B", "KB", "MB", "GB"]
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f}{units[unit_index]}"


def cache_headers(max_age: int) -> Dict[str, str]:
    """Client and CDN cache directives for a given lifetime in seconds."""
    return {
        "Cache-Control": f"public, max-age={max_age}",
        "CDN-Cache-Control": f"max-age={max_age}",
    }
