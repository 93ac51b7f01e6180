from .logger import (
    clear_operation_id,
    get_logger,
    get_operation_id,
    log_stage,
    set_operation_id,
    setup_logging,
)
from .sink import LogEntry, LogLevel, LogSink, LogSinkProcessor, LogSource

__all__ = [
    "LogEntry",
    "LogLevel",
    "LogSink",
    "LogSinkProcessor",
    "LogSource",
    "clear_operation_id",
    "get_logger",
    "get_operation_id",
    "log_stage",
    "set_operation_id",
    "setup_logging",
]
