"""Structured JSON logging with correlation ID support."""

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

ROOT_LOGGER = "linerelay"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with correlation ID and redacted extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_obj["correlationId"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_obj.update(record.extra_fields)

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def configure_logging(level: int | str | None = None) -> None:
    """Attach the JSON handler to the package root logger.

    Module loggers propagate to it, so this is the only handler installed.
    Safe to call more than once; level defaults to INFO on first setup.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.propagate = False
        root.setLevel(logging.INFO)
    if level is not None:
        root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger under the JSON-configured package root."""
    configure_logging()
    return logging.getLogger(name)


def hash_identifier(value: str) -> str:
    """Non-reversible short hash for logging ids. Empty input stays empty."""
    if not value:
        return ""
    return hashlib.sha256(value.encode()).hexdigest()[:12]
