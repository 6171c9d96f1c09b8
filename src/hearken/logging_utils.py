#!/usr/bin/env python3
"""
Unified logging utility for Hearken modules.

Provides setup_logger(name, logfile) to configure a rotating file handler and
console handler with consistent formatting. Idempotent: reuses existing handlers
if already configured for the logger.

Supports both traditional and structured JSON logging.
"""
from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime
from logging.handlers import RotatingFileHandler

DEFAULT_LOGFILE = "logs/hearken.log"

# Attributes every LogRecord carries; anything else was passed via `extra`
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'message',
    'taskName', 'request_id',
})


def setup_logger(name: str, logfile: str = DEFAULT_LOGFILE, level: int = logging.INFO,
                 structured: bool = False) -> logging.Logger:
    """Create or return a configured logger with rotating file + console handlers.

    Args:
        name: Logger name
        logfile: Log file path
        level: Log level
        structured: Whether to use structured JSON logging
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level)

    try:
        logdir = os.path.dirname(logfile)
        if logdir and not os.path.exists(logdir):
            os.makedirs(logdir, exist_ok=True)
    except OSError:
        pass

    if structured:
        fmt = JSONFormatter()
    else:
        fmt = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        fh = RotatingFileHandler(logfile, maxBytes=2_000_000, backupCount=3)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    except OSError:
        # If file handler fails, rely on console handler only
        pass

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    return logger


def set_log_level(level: int, prefix: str = "hearken") -> None:
    """Apply `level` to every already-configured logger under `prefix`."""
    for name in list(logging.root.manager.loggerDict):
        if name == prefix or name.startswith(prefix + "."):
            logging.getLogger(name).setLevel(level)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def __init__(self, include_request_id: bool = True):
        super().__init__()
        self.include_request_id = include_request_id

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if self.include_request_id and hasattr(record, 'request_id'):
            log_entry['request_id'] = record.request_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log message with additional context"""
    context.setdefault('request_id', str(uuid.uuid4())[:8])
    logger.log(level, message, extra=context)


__all__ = ["setup_logger", "set_log_level", "JSONFormatter", "log_with_context", "DEFAULT_LOGFILE"]
