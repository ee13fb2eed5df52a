"""
Static asset loading for the homepage, rule listing template and favicon.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"
LIST_TEMPLATE_FILE = "list.html"
FAVICON_FILE = "favicon.ico"


@dataclass(frozen=True)
class Statics:
    """Preloaded static assets; a missing file is None."""
    homepage: Optional[str] = None
    list_template: Optional[str] = None
    favicon: Optional[bytes] = None


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"[Static] Cannot read {path}: {e}")
        return None


def _read_bytes(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except OSError as e:
        logger.warning(f"[Static] Cannot read {path}: {e}")
        return None


def load_statics(public_dir: Union[str, Path]) -> Statics:
    """Read every static asset once at startup."""
    public_dir = Path(public_dir)
    return Statics(
        homepage=_read_text(public_dir / INDEX_FILE),
        list_template=_read_text(public_dir / LIST_TEMPLATE_FILE),
        favicon=_read_bytes(public_dir / FAVICON_FILE),
    )
