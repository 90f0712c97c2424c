"""
Logging configuration for the shot replay server.

Provides structured logging with:
- Rotating file handlers (size and count limits)
- JSON-formatted logs for easy parsing
- Request and replay-session context (request_id, session_id, ...)
- A separate error-only log file
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from datetime import datetime, timezone
import traceback


LOGGER_NAME = "shot-replay"

# Attributes every LogRecord carries; anything else on the record came in via `extra`
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'asctime',
})


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as a single JSON line with its context."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        # request_id, session_id, endpoint, duration_ms, ... all arrive as extras
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    log_dir: str = "/app/logs",
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB per file
    backup_count: int = 3,
    log_level: str = "INFO"
) -> logging.Logger:
    """
    Set up the application logger with console and rotating file handlers.

    Args:
        log_dir: Directory to store log files
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of rotated files to keep
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.propagate = False

    # setup_logging may run more than once (tests, reloads)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(HumanReadableFormatter())
    logger.addHandler(console_handler)

    all_logs_handler = logging.handlers.RotatingFileHandler(
        log_path / f"{LOGGER_NAME}.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    all_logs_handler.setLevel(logging.DEBUG)
    all_logs_handler.setFormatter(JSONFormatter())
    logger.addHandler(all_logs_handler)

    error_logs_handler = logging.handlers.RotatingFileHandler(
        log_path / f"{LOGGER_NAME}-errors.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    error_logs_handler.setLevel(logging.ERROR)
    error_logs_handler.setFormatter(JSONFormatter())
    logger.addHandler(error_logs_handler)

    logger.info(
        "Logging system initialized",
        extra={
            "log_dir": str(log_dir),
            "max_bytes": max_bytes,
            "backup_count": backup_count,
            "log_level": log_level
        }
    )

    return logger


def get_logger() -> logging.Logger:
    """Get the configured application logger."""
    return logging.getLogger(LOGGER_NAME)
