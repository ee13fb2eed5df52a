"""
Log Buffer Module

In-memory rolling log exposed at GET /logs.
"""

from .buffer import LogBuffer, LogEntry, DEFAULT_CAPACITY

__all__ = ["LogBuffer", "LogEntry", "DEFAULT_CAPACITY"]
