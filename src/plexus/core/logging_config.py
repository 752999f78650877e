"""Centralized logging configuration for plexus.

Usage:
    from plexus.core.logging_config import configure_logging

    # Configure once at application startup
    configure_logging(level="DEBUG")

    # Modules keep using the standard pattern
    logger = logging.getLogger(__name__)

Environment Variables:
    PLEXUS_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    PLEXUS_LOG_FORMAT: Output format ("text" or "json")
    PLEXUS_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_FORMAT_WITH_MS = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else arrived via `extra=`.
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_configured = False


class JsonFormatter(logging.Formatter):
    """JSON log formatter.

    Each record becomes one object:
    {"timestamp": ..., "level": "INFO", "logger": "plexus.core.patterns.retry",
     "message": "[run] retry_attempt: attempt=2", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    include_ms: bool = True,
    force: bool = False,
) -> None:
    """Configure root logging.

    Subsequent calls are ignored unless force=True. Explicit arguments win
    over the PLEXUS_LOG_* environment variables.

    Args:
        level: Log level. Defaults to PLEXUS_LOG_LEVEL or "INFO".
        format: Output format. Defaults to PLEXUS_LOG_FORMAT or "text".
        file_path: Optional file path. Defaults to PLEXUS_LOG_FILE.
        include_ms: Include milliseconds in text timestamps.
        force: Reconfigure even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    level = level or os.environ.get("PLEXUS_LOG_LEVEL", "INFO")
    format = format or os.environ.get("PLEXUS_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("PLEXUS_LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        fmt = TEXT_FORMAT_WITH_MS if include_ms else TEXT_FORMAT
        formatter = logging.Formatter(fmt, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # aiohttp's access log is noisy for SSE streams
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    _configured = True

