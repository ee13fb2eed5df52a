"""
Log Buffer
日志缓冲区

Bounded, append-only ring buffer of structured log entries.
An instance is handed to the components that log (router, forwarder);
each entry is also forwarded to a stdlib logger.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional

DEFAULT_CAPACITY = 2000


@dataclass(frozen=True)
class LogEntry:
    """One structured log line."""
    timestamp: float
    level: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        iso = datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat()
        text = self.message
        if self.level == "ERROR":
            text = f"[ERROR] {text}"
        if self.fields:
            extras = " ".join(f"{k}={v}" for k, v in self.fields.items())
            text = f"{text} {extras}"
        return f"[{iso}] {text}"


class LogBuffer:
    """
    Thread-safe ring buffer; the oldest entry is dropped once
    `capacity` is reached.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._lock = Lock()
        self._logger = logger if logger is not None else logging.getLogger("cdn_proxy")
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def info(self, message: str, **fields: Any) -> LogEntry:
        return self._append(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> LogEntry:
        return self._append(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> LogEntry:
        return self._append(logging.ERROR, message, fields)

    def entries(self) -> List[LogEntry]:
        """Snapshot of the buffered entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def render(self) -> str:
        return "\n".join(entry.format() for entry in self.entries())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _append(self, level: int, message: str, fields: Dict[str, Any]) -> LogEntry:
        entry = LogEntry(
            timestamp=self._clock(),
            level=logging.getLevelName(level),
            message=message,
            fields=dict(fields),
        )
        with self._lock:
            self._entries.append(entry)
        self._logger.log(level, entry.format())
        return entry
