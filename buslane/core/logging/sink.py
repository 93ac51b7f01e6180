"""
In-app log sink.

A bounded ring buffer of log entries that the host UI reads from. Instead of
events, listeners are plain callbacks registered with ``add_listener``; they
run synchronously on the logging thread after the entry is stored, and the
host decides how to marshal them onto its own loop.
"""

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from structlog.types import EventDict, WrappedLogger

from buslane.core.config.constants import LOG_SINK_MAX_ENTRIES

_SERVICEBUS_LOGGER_PREFIXES = ("buslane.infrastructure.servicebus", "azure.servicebus")
_RESERVED_KEYS = {"event", "level", "timestamp", "logger", "stage", "exception"}


class LogSource(str, Enum):
    APPLICATION = "application"
    SERVICEBUS = "servicebus"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    message: str
    source: LogSource = LogSource.APPLICATION
    level: LogLevel = LogLevel.INFO
    details: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


LogListener = Callable[[LogEntry], None]


class LogSink:
    """Thread-safe bounded buffer of LogEntry objects."""

    def __init__(self, max_entries: int = LOG_SINK_MAX_ENTRIES):
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._listeners: list[LogListener] = []
        self._lock = threading.Lock()

    def log(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            listeners = list(self._listeners)

        # Listeners run outside the lock so a slow UI callback cannot block writers
        for listener in listeners:
            listener(entry)

    def get_logs(self) -> list[LogEntry]:
        """All entries, newest first."""
        with self._lock:
            return sorted(self._entries, key=lambda e: e.timestamp, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def add_listener(self, listener: LogListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: LogListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._entries)


def _to_level(method_name: str) -> LogLevel:
    if method_name in ("error", "critical", "exception"):
        return LogLevel.ERROR
    if method_name in ("warning", "warn"):
        return LogLevel.WARNING
    if method_name == "debug":
        return LogLevel.DEBUG
    return LogLevel.INFO


class LogSinkProcessor:
    """
    structlog processor that copies each event into a LogSink.

    Must run after redaction so secrets never reach the UI buffer. A failing
    listener is swallowed here: the in-app log is best effort and must not
    break the caller that was only trying to log.
    """

    def __init__(self, sink: LogSink):
        self._sink = sink

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        logger_name = str(event_dict.get("logger", ""))
        source = (
            LogSource.SERVICEBUS
            if logger_name.startswith(_SERVICEBUS_LOGGER_PREFIXES)
            else LogSource.APPLICATION
        )
        extras = {k: v for k, v in event_dict.items() if k not in _RESERVED_KEYS}
        details = ", ".join(f"{k}={v}" for k, v in extras.items()) or None
        if event_dict.get("exception"):
            details = f"{details}\n{event_dict['exception']}" if details else str(event_dict["exception"])

        try:
            self._sink.log(
                LogEntry(
                    message=str(event_dict.get("event", "")),
                    source=source,
                    level=_to_level(method_name),
                    details=details,
                )
            )
        except Exception:
            # Listener failures stay inside the sink
            pass
        return event_dict
