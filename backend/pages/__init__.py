"""
Pages Module

Homepage, favicon, rule listing and log view.
"""

from .routes import create_pages_router, format_duration, format_establish_time
from .static_loader import Statics, load_statics

__all__ = [
    "create_pages_router",
    "format_duration",
    "format_establish_time",
    "Statics",
    "load_statics",
]
