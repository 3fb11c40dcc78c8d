"""
Structured JSON Logging Configuration for the secret controller

Provides:
- JSON formatted logs for easy parsing (Loki, ELK, etc.)
- Reconcile key tracking across log entries
- Log level filtering via environment variable
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variable for the object currently being reconciled
reconcile_key_ctx: ContextVar[Optional[str]] = ContextVar("reconcile_key", default=None)

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "reconcile_key",
))


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-10-19T19:30:00.000000Z",
        "level": "INFO",
        "logger": "shootstate_sync.reconciler",
        "message": "Removing finalizer",
        "key": "shoot--dev--foo/ca",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        key = reconcile_key_ctx.get()
        if key:
            log_obj["key"] = key

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_obj["extra"] = extra_fields

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ReconcileKeyFilter(logging.Filter):
    """Adds the current reconcile key to plain-text records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.reconcile_key = reconcile_key_ctx.get() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_to_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure structured logging for the controller.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (True) or standard format (False)
        log_to_file: Optional file path for log output

    Returns:
        Configured root logger
    """
    # Allow environment override
    level = os.environ.get("SHOOTSTATE_SYNC_LOG_LEVEL", level).upper()
    json_format = os.environ.get("SHOOTSTATE_SYNC_LOG_JSON", str(json_format)).lower() == "true"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(reconcile_key)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_to_file:
        handlers.append(logging.FileHandler(log_to_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ReconcileKeyFilter())
        root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger
