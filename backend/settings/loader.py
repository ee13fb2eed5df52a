"""
Config file loading.

A missing or unparsable file falls back to the default config; a file that
parses but carries invalid values is fatal.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .models import ServiceConfig
from .units import ConfigError

logger = logging.getLogger(__name__)


def load_config(
    path: Union[str, Path],
    fallback: Optional[ServiceConfig] = None,
) -> ServiceConfig:
    """
    Load the service configuration from a JSON file.

    Args:
        path: Path to index_config.json
        fallback: Config returned when the file cannot be read or decoded

    Returns:
        Validated ServiceConfig

    Raises:
        ConfigError: if the file is valid JSON but fails validation
    """
    if fallback is None:
        fallback = ServiceConfig()

    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"[Config] Failed to load {config_path}, using fallback config: {e}")
        return fallback

    try:
        config = ServiceConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{e}") from e

    logger.info(f"[Config] Loaded {len(config.proxies)} proxy rules from {config_path}")
    return config
